from markvault.client.autofill import BookmarkDraft, ImageUpload, MetadataAutofill
from markvault.client.gateway import (
    ClientConfig,
    GatewayClient,
    GatewayError,
    NoRowsAffectedError,
    SubscriptionGoneError,
)
from markvault.client.reconciler import Reconciler
from markvault.client.records import BookmarkRecord, CategoryRecord
from markvault.client.session import DashboardSession

__all__ = [
    "BookmarkDraft",
    "BookmarkRecord",
    "CategoryRecord",
    "ClientConfig",
    "DashboardSession",
    "GatewayClient",
    "GatewayError",
    "ImageUpload",
    "MetadataAutofill",
    "NoRowsAffectedError",
    "Reconciler",
    "SubscriptionGoneError",
]
