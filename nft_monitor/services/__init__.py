"""
Monitor services: filter building, decoding, classification, subscriptions,
metadata lookup and reporting.
"""

from .exceptions import (
    ConnectionLost,
    DecodeError,
    DecodeErrorReason,
    InvalidAddress,
    MalformedTopic,
    MonitorError,
    NotRunning,
    SubscriptionError,
)
from .filters import (
    Direction,
    FilterDescriptor,
    build_global_filter,
    build_wallet_filter,
    build_wallet_filters,
)
from .decoders import TransferClassification, TransferEvent, TransferLogDecoder
from .transfer_classifier import classify
from .metadata_service import TokenMetadata, TokenMetadataFetcher
from .reporter import LoggingReporter, TransferRecord
from .subscription_manager import MonitorState, RunStatus, StartResult, Subscription, SubscriptionManager

__all__ = [
    # Errors
    'ConnectionLost',
    'DecodeError',
    'DecodeErrorReason',
    'InvalidAddress',
    'MalformedTopic',
    'MonitorError',
    'NotRunning',
    'SubscriptionError',
    # Filters
    'Direction',
    'FilterDescriptor',
    'build_global_filter',
    'build_wallet_filter',
    'build_wallet_filters',
    # Decoding
    'TransferClassification',
    'TransferEvent',
    'TransferLogDecoder',
    'classify',
    # Metadata / reporting
    'TokenMetadata',
    'TokenMetadataFetcher',
    'LoggingReporter',
    'TransferRecord',
    # Subscriptions
    'MonitorState',
    'RunStatus',
    'StartResult',
    'Subscription',
    'SubscriptionManager',
]
