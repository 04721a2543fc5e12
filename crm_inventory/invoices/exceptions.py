from crm_inventory.inventory.error_codes import InvoiceErrorCode


class InvoiceNotFound(Exception):
    code = InvoiceErrorCode.NOT_FOUND

    def __init__(self, invoice_id):
        self.invoice_id = invoice_id
        super().__init__("Invoice not found")


class InvalidInvoiceStatus(Exception):
    """Raised when an invoice cannot move to the requested status."""

    code = InvoiceErrorCode.INVALID_STATUS

    def __init__(self, message: str, code: InvoiceErrorCode = InvoiceErrorCode.INVALID_STATUS):
        self.code = code
        super().__init__(message)
