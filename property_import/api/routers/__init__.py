"""
FastAPI routers for the import service, split by concern: uploads and
templates in ``imports``, job polling in ``jobs``.
"""
