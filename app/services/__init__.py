"""
Services.

Business logic layer. Import from the subpackages directly:
exchange, ledger, deposit, settlement, withdrawal, notification.
"""
