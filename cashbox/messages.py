# cashbox/messages.py
"""User facing (Arabic) texts for errors and ledger descriptions."""

# ---------- Errors ----------
INSUFFICIENT_BALANCE_IN = "الرصيد غير كافٍ في {box}. المطلوب: {required}، المتوفر: {available}"
SELECTED_MONEY_BOX = "صندوق المال المختار"
NO_OPEN_CASH_BOX = "يجب فتح صندوق قبل إجراء العمليات المالية"
CASH_BOX_ALREADY_OPEN = "لديك صندوق مفتوح بالفعل"
CASH_BOX_CLOSED = "الصندوق مغلق بالفعل"
CASH_BOX_NOT_FOUND = "الصندوق غير موجود"
MONEY_BOX_NOT_FOUND = "صندوق المال غير موجود"
MONEY_BOX_NAME_REQUIRED = "اسم صندوق المال مطلوب"
MONEY_BOX_EXISTS = "يوجد صندوق مال بنفس الاسم"
MONEY_BOX_IN_USE = "لا يمكن حذف صندوق المال لوجود معاملات"
SAME_BOX_TRANSFER = "لا يمكن التحويل إلى نفس الصندوق"
AMOUNT_MUST_BE_POSITIVE = "يجب أن يكون المبلغ أكبر من صفر"
INVALID_TRANSACTION_TYPE = "نوع المعاملة غير صالح"
MAX_WITHDRAWAL_EXCEEDED = "المبلغ يتجاوز الحد الأقصى للسحب ({limit})"
RECORD_NOT_FOUND = "السجل غير موجود"
AMOUNT_EXCEEDS_REMAINING = "المبلغ أكبر من المبلغ المتبقي"
RETURN_EXCEEDS_REMAINING = "مبلغ الإرجاع أكبر من المبلغ المتبقي القابل للإرجاع ({remaining})"
VALIDATION_FAILED = "بيانات الطلب غير صالحة"
INTERNAL_ERROR = "حدث خطأ في الخادم"
DATABASE_ERROR = "حدث خطأ في قاعدة البيانات"
UNAUTHORIZED = "يجب تسجيل الدخول"
FORBIDDEN = "صلاحيات غير كافية"
INVALID_CREDENTIALS = "اسم المستخدم أو كلمة المرور غير صحيحة"
LEDGER_IMMUTABLE = "لا يمكن تعديل أو حذف حركات الصندوق"

# ---------- Success ----------
CASH_BOX_OPENED = "تم فتح الصندوق بنجاح"
CASH_BOX_CLOSED_OK = "تم إغلاق الصندوق بنجاح"
CASH_BOX_FORCE_CLOSED = "تم إغلاق الصندوق إجبارياً بنجاح"
TRANSACTION_ADDED = "تمت إضافة المعاملة بنجاح"
SETTINGS_SAVED = "تم حفظ الإعدادات بنجاح"
MONEY_BOX_CREATED = "تم إنشاء صندوق المال بنجاح"
MONEY_BOX_UPDATED = "تم تحديث صندوق المال بنجاح"
MONEY_BOX_DELETED = "تم حذف صندوق المال بنجاح"
TRANSFER_DONE = "تم التحويل بنجاح"
TRANSFER_TO_DAILY_DONE = "تم التحويل إلى الصندوق اليومي بنجاح"
TRANSFER_FROM_DAILY_DONE = "تم التحويل من الصندوق اليومي بنجاح"
TRANSFER_TO_BOX_DONE = "تم التحويل إلى {name} بنجاح"
SAVED = "تم الحفظ بنجاح"

# ---------- Ledger descriptions ----------
DESC_OPENING = "فتح الصندوق"
DESC_CLOSING_ADJUSTMENT = "إغلاق الصندوق"
DESC_FORCE_CLOSE = "إغلاق إجباري بواسطة المدير"
DESC_FORCE_CLOSE_TRANSFER = "تحويل من صندوق نقدي مغلق - {name}"
DESC_MANUAL_ADJUSTMENT = "تسوية يدوية"
DESC_INITIAL_DEPOSIT = "إيداع ابتدائي"
DESC_TRANSFER_TO_DAILY = "تحويل إلى الصندوق اليومي"
DESC_TRANSFER_FROM_DAILY = "تحويل من الصندوق اليومي"
DESC_TRANSFER_TO_BOX = "تحويل إلى {name}"
DESC_FROM_CASH_BOX = "تحويل من صندوق نقدي: {notes}"
DESC_TO_CASHIER = "تحويل إلى القاصة: {notes}"
DESC_TRANSFER_OUT = "تحويل إلى {name}"
DESC_TRANSFER_IN = "تحويل من {name}"

DESC_SALE = "مبيعات - فاتورة رقم {id}"
DESC_PURCHASE = "مشتريات - فاتورة رقم {id}"
DESC_EXPENSE = "مصروفات - {description}"
DESC_EXPENSE_DEFAULT = "مصروفات عامة"
DESC_EXPENSE_REVERSAL = "إلغاء مصروفات - {description} (تحديث)"
DESC_EXPENSE_UPDATE = "تحديث مصروفات - {description}"
DESC_CUSTOMER_RECEIPT = "إيصال عميل - {name}"
DESC_SUPPLIER_PAYMENT = "دفع مورد - {name}"
DESC_SALE_RETURN = "إرجاع مبيعات - فاتورة رقم {id}"
DESC_PURCHASE_RETURN = "إرجاع مشتريات - فاتورة رقم {id}"
DESC_DEBT_REPAYMENT = "سداد دين - فاتورة رقم {id}"
DESC_INSTALLMENT_PAYMENT = "سداد قسط - قسط رقم {id}"
UNKNOWN_PARTY = "غير محدد"
