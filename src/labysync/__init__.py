"""Core package for synchronising a local labyrinth content tree with the site."""

from .classifier import PageClassification, PageInventory, PageStatus, classify_pages
from .content_store import ConfigError, ContentStore, Credentials, LocalPage
from .gateway import (
    AnswerSubmission,
    AuthenticationError,
    LabyrinthSubmission,
    PageSubmission,
    RemoteError,
    RemoteGateway,
    TransientRemoteError,
)
from .models import Answer, LabyrinthConfig, LabyrinthState, PageMetadata, PageState
from .plan import Link, SyncPlan, build_plan, collect_links
from .reconciler import FatalSyncError, PreparedSync, Reconciler, SyncSummary, prepare_sync
from .reporting import ConsoleReporter, NullReporter, SyncReporter
from .retry import RetryingCaller, RetryPolicy, SettleDelay, call_with_retries
from .settings import SyncSettings
from .validation import ContentValidationError, ValidationReport

__all__ = [
    "Answer",
    "AnswerSubmission",
    "AuthenticationError",
    "ConfigError",
    "ConsoleReporter",
    "ContentStore",
    "ContentValidationError",
    "Credentials",
    "FatalSyncError",
    "LabyrinthConfig",
    "LabyrinthState",
    "LabyrinthSubmission",
    "Link",
    "LocalPage",
    "NullReporter",
    "PageClassification",
    "PageInventory",
    "PageMetadata",
    "PageState",
    "PageStatus",
    "PageSubmission",
    "PreparedSync",
    "Reconciler",
    "RemoteError",
    "RemoteGateway",
    "RetryPolicy",
    "RetryingCaller",
    "SettleDelay",
    "SyncPlan",
    "SyncReporter",
    "SyncSettings",
    "SyncSummary",
    "TransientRemoteError",
    "ValidationReport",
    "build_plan",
    "call_with_retries",
    "classify_pages",
    "collect_links",
    "prepare_sync",
]
