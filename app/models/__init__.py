"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and a future Alembic env.py)
can import Base and discover every table via a single import:

    from app.models import Base
"""

from app.db.base import Base
from app.models.budget import Budget, BudgetCriteria
from app.models.cart import CartItem
from app.models.company import Company
from app.models.invitation import Invitation
from app.models.notification import Notification, NotificationTargetType
from app.models.product import Category, Product
from app.models.purchase import PurchaseItem, PurchaseRequest, PurchaseStatus
from app.models.upload import Upload
from app.models.user import User, UserRole
from app.models.wishlist import WishlistItem

__all__ = [
    "Base",
    "Budget",
    "BudgetCriteria",
    "CartItem",
    "Category",
    "Company",
    "Invitation",
    "Notification",
    "NotificationTargetType",
    "Product",
    "PurchaseItem",
    "PurchaseRequest",
    "PurchaseStatus",
    "Upload",
    "User",
    "UserRole",
    "WishlistItem",
]
