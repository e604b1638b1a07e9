"""Process-wide service construction."""

from dataclasses import dataclass

from saiman.clients.bedrock import BedrockClient, BedrockConfig
from saiman.clients.exa import ExaClient
from saiman.clients.reddit import RedditClient
from saiman.config import Settings
from saiman.services.agent import AgentLoop
from saiman.services.attachments import AttachmentStore
from saiman.services.conversation import ConversationService
from saiman.services.session_manager import AgentSessionManager
from saiman.services.store import ConversationStore
from saiman.services.usage import TokenTracker
from saiman.tools.registry import ToolRegistry, build_default_registry
from saiman.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything the API, CLI and evals need, built once at start-up."""

    settings: Settings
    tracker: TokenTracker
    store: ConversationStore
    attachments: AttachmentStore
    exa_client: ExaClient
    reddit_client: RedditClient
    registry: ToolRegistry
    model_client: BedrockClient
    sessions: AgentSessionManager
    conversations: ConversationService

    def new_agent_loop(self) -> AgentLoop:
        """A standalone loop outside any conversation session."""
        return self.sessions.loop_factory()

    def close(self) -> None:
        self.sessions.cancel_all()
        self.store.close()


def build_services(settings: Settings) -> Services:
    """Wire clients, stores and services from settings."""
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    tracker = TokenTracker(settings.usage_path)
    store = ConversationStore(settings.database_path)
    attachments = AttachmentStore(settings.attachments_dir)

    exa_client = ExaClient(settings.exa_api_key)
    reddit_client = RedditClient()
    registry = build_default_registry(exa_client, reddit_client)

    model_client = BedrockClient(
        # Rebuilt per request so the date and time stay current
        system_prompt=lambda: settings.system_prompt,
        aws_access_key=settings.aws_access_key_id or None,
        aws_secret_key=settings.aws_secret_access_key or None,
        aws_session_token=settings.aws_session_token,
        aws_region=settings.aws_region,
        config=BedrockConfig(model=settings.bedrock_model_id),
        load_image=attachments.load_bytes,
    )

    def loop_factory() -> AgentLoop:
        return AgentLoop(
            model_client,
            registry,
            tracker=tracker,
            max_tool_calls=settings.max_tool_calls,
            title_model_id=settings.bedrock_haiku_model_id,
        )

    sessions = AgentSessionManager(loop_factory)
    conversations = ConversationService(
        store, attachments, sessions, stale_timeout_minutes=settings.stale_timeout_minutes
    )

    logger.info(f"Services ready (data dir {settings.data_dir}, model {settings.bedrock_model_id})")
    return Services(
        settings=settings,
        tracker=tracker,
        store=store,
        attachments=attachments,
        exa_client=exa_client,
        reddit_client=reddit_client,
        registry=registry,
        model_client=model_client,
        sessions=sessions,
        conversations=conversations,
    )
