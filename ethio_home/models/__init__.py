from .user import User
from .property import Property
from .interest_form import InterestForm
from .payment import Payment
from .selling import Selling
from .subscription_plan import SubscriptionPlan
from .review import Review

__all__ = ['User', 'Property', 'InterestForm', 'Payment', 'Selling', 'SubscriptionPlan', 'Review']
