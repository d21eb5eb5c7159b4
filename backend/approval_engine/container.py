"""Container - Wire collaborators from settings"""
from typing import Optional

from .config.settings import Settings, settings as default_settings
from .engine.template_registry import TemplateRegistry
from .engine.approver_resolver import ApproverResolver
from .engine.transition_engine import TransitionEngine
from .engine.permission_guard import PermissionGuard
from .engine.deadline_calculator import DeadlineCalculator
from .repositories.instance_store import InMemoryInstanceStore, MongoInstanceStore
from .repositories.audit_repo import InMemoryAuditLog, MongoAuditLog
from .services.directory_service import DirectoryLookup, StaticDirectory, HttpDirectoryService
from .services.event_sink import EventSink, LoggingEventSink, WebhookEventSink
from .services.workflow_manager import WorkflowManager
from .templates.default_templates import default_templates
from .utils.logger import get_logger

logger = get_logger(__name__)


def build_directory(config: Settings) -> DirectoryLookup:
    if config.directory_url:
        logger.info(f"Using HTTP directory: {config.directory_url}")
        return HttpDirectoryService(config.directory_url, timeout=config.directory_timeout_seconds)
    if config.directory_file_path:
        return StaticDirectory.from_file(config.directory_file_path)
    logger.warning("No directory configured; approver resolution will fail until one is supplied")
    return StaticDirectory()


def build_event_sink(config: Settings) -> EventSink:
    if config.event_webhook_url:
        return WebhookEventSink(config.event_webhook_url, timeout=config.event_webhook_timeout_seconds)
    return LoggingEventSink()


def build_manager(
    config: Optional[Settings] = None,
    directory: Optional[DirectoryLookup] = None,
    event_sink: Optional[EventSink] = None,
    registry: Optional[TemplateRegistry] = None,
    permission_guard: Optional[PermissionGuard] = None
) -> WorkflowManager:
    """
    Build a WorkflowManager

    Explicit collaborators take precedence over the ones derived from
    settings; tests pass a StaticDirectory and an InMemoryEventSink.
    """
    config = config or default_settings
    directory = directory or build_directory(config)

    if config.store_backend == "mongo":
        store = MongoInstanceStore()
        audit_log = MongoAuditLog()
    else:
        store = InMemoryInstanceStore()
        audit_log = InMemoryAuditLog()

    engine = TransitionEngine(
        approver_resolver=ApproverResolver(directory),
        permission_guard=permission_guard or PermissionGuard(config.administrator_ids_list)
    )

    logger.info(f"Workflow manager using {config.store_backend} store")
    return WorkflowManager(
        registry=registry or TemplateRegistry(default_templates()),
        store=store,
        audit_log=audit_log,
        transition_engine=engine,
        directory=directory,
        deadline_calculator=DeadlineCalculator(),
        event_sink=event_sink or build_event_sink(config),
        max_attempts=config.cas_max_retries
    )
