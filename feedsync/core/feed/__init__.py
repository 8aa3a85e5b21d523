"""
Feed generation core module.
"""

from .models import FeedStatus, FeedJobEvent, FeedJobState, FeedArgs, FeedGenerationError, RegistrationError
from .dataset import build_product_ids, get_product_ids_for_feed
from .state import FeedJobStateManager
from .executor import StepExecutor
from .reconciler import RegistrationReconciler
from .dirty import DirtyTracker
from .sync import ProductSync

__all__ = [
    'FeedStatus',
    'FeedJobEvent',
    'FeedJobState',
    'FeedArgs',
    'FeedGenerationError',
    'RegistrationError',
    'build_product_ids',
    'get_product_ids_for_feed',
    'FeedJobStateManager',
    'StepExecutor',
    'RegistrationReconciler',
    'DirtyTracker',
    'ProductSync'
]
