"""
Property bulk-import service.

Spreadsheet uploads of owners, buildings, tenants and lots are validated,
resolved against previously imported records and created in dependency order.
"""
