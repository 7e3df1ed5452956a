# backend/app/services/__init__.py
"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from backend.app.services.products import (
    ProductService,
    ProductServiceError,
    ProductNotFoundError,
    VariationNotFoundError,
)
from backend.app.services.cart import CartService, CartServiceError
from backend.app.services.wishlist import WishlistService, WishlistServiceError
from backend.app.services.orders import (
    OrderService,
    OrderServiceError,
    OrderNotFoundError,
    InvalidOrderStatusError,
    OrderAccessDeniedError,
    InsufficientStockError,
)
from backend.app.services.users import UserService, UserServiceError, UserNotFoundError
from backend.app.services.affiliates import (
    AffiliateService,
    AffiliateServiceError,
    InvalidAffiliateCodeError,
    AlreadyAffiliateError,
    RegistrationPendingError,
)
from backend.app.services.balances import (
    BalanceService,
    BalanceServiceError,
    AffiliateNotFoundError,
    InsufficientBalanceError,
)
from backend.app.services.sales_commissions import (
    SalesCommissionService,
    SalesCommissionServiceError,
    calculate_commission,
)
from backend.app.services.referral_commissions import (
    ReferralCommissionService,
    ReferralCommissionServiceError,
)
from backend.app.services.withdrawals import (
    WithdrawalService,
    WithdrawalServiceError,
    WithdrawalNotFoundError,
    WithdrawalAccessDeniedError,
)
from backend.app.services.registration_payments import (
    RegistrationPaymentService,
    RegistrationPaymentServiceError,
)
from backend.app.services.sales_analytics import SalesAnalyticsService
from backend.app.services.referral_analytics import ReferralAnalyticsService
from backend.app.services.affiliate_sales_analytics import AffiliateSalesAnalyticsService
from backend.app.services.cache import CacheService

__all__ = [
    # Catalog
    "ProductService",
    "ProductServiceError",
    "ProductNotFoundError",
    "VariationNotFoundError",
    # Cart and wishlist
    "CartService",
    "CartServiceError",
    "WishlistService",
    "WishlistServiceError",
    # Orders
    "OrderService",
    "OrderServiceError",
    "OrderNotFoundError",
    "InvalidOrderStatusError",
    "OrderAccessDeniedError",
    "InsufficientStockError",
    # Users
    "UserService",
    "UserServiceError",
    "UserNotFoundError",
    # Affiliates and balances
    "AffiliateService",
    "AffiliateServiceError",
    "InvalidAffiliateCodeError",
    "AlreadyAffiliateError",
    "RegistrationPendingError",
    "BalanceService",
    "BalanceServiceError",
    "AffiliateNotFoundError",
    "InsufficientBalanceError",
    # Commissions and payouts
    "SalesCommissionService",
    "SalesCommissionServiceError",
    "calculate_commission",
    "ReferralCommissionService",
    "ReferralCommissionServiceError",
    "WithdrawalService",
    "WithdrawalServiceError",
    "WithdrawalNotFoundError",
    "WithdrawalAccessDeniedError",
    "RegistrationPaymentService",
    "RegistrationPaymentServiceError",
    # Analytics
    "SalesAnalyticsService",
    "ReferralAnalyticsService",
    "AffiliateSalesAnalyticsService",
    # Cache service
    "CacheService",
]
