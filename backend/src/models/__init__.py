"""SQLAlchemy models."""
from models.asset import Asset, AssetFolder
from models.base import Base, DualStateMixin, RowLifecycle, TimestampMixin, UUIDv7Mixin
from models.collection import Collection, CollectionField, CollectionItem
from models.component import Component
from models.font import Font
from models.layer_style import LayerStyle
from models.locale import Locale
from models.page import Page, PageFolder, PageLayers
from models.version import ActionType, Version, VersionEntityType

__all__ = [
    "ActionType",
    "Asset",
    "AssetFolder",
    "Base",
    "Collection",
    "CollectionField",
    "CollectionItem",
    "Component",
    "DualStateMixin",
    "Font",
    "LayerStyle",
    "Locale",
    "Page",
    "PageFolder",
    "PageLayers",
    "RowLifecycle",
    "TimestampMixin",
    "UUIDv7Mixin",
    "Version",
    "VersionEntityType",
]
