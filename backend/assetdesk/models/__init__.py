from .auth import User, SessionToken, ActivityLog
from .organization import Department, Employee, RegistrationRequest, MonitorAssignment
from .inventory import Product, StockHistory, ProductAttachment
from .workflow import ProductRequest, ProductAssignment

__all__ = [
    'User', 'SessionToken', 'ActivityLog',
    'Department', 'Employee', 'RegistrationRequest', 'MonitorAssignment',
    'Product', 'StockHistory', 'ProductAttachment',
    'ProductRequest', 'ProductAssignment',
]
