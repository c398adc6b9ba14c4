from __future__ import annotations

from datetime import timedelta

import structlog
from dependency_injector import containers, providers

from core.settings import SETTINGS
from infra.resources import DatabaseResource


logger = structlog.get_logger("interview")


class InfrastructureContainer(containers.DeclarativeContainer):
    config = providers.Configuration()
    settings = providers.Object(SETTINGS)
    logger = providers.Object(logger)

    # Database
    database = providers.Resource(
        DatabaseResource,
        database_url=str(SETTINGS.DATABASE.DATABASE_URL),
    )

    # Generation capability
    generator = providers.Singleton(
        "api.features.interview.generator.ChatOpenAIGenerator",
        model=SETTINGS.OPENAI.OPENAI_MODEL,
        temperature=SETTINGS.OPENAI.OPENAI_TEMPERATURE,
        api_key=SETTINGS.OPENAI.OPENAI_API_KEY.get_secret_value(),
        timeout=SETTINGS.INTERVIEW.LLM_TIMEOUT_SECONDS,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Application services - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    classifier = providers.Singleton(
        "api.features.interview.classifier.CompletenessClassifier",
        generator=infrastructure.generator,
        timeout=SETTINGS.INTERVIEW.LLM_TIMEOUT_SECONDS,
    )

    windower = providers.Singleton(
        "api.features.interview.history.HistoryWindower",
        generation_limit=SETTINGS.INTERVIEW.HISTORY_WINDOW_SIZE,
    )

    state_machine = providers.Singleton(
        "api.features.interview.state_machine.ConversationStateMachine",
        classifier=classifier,
    )

    # Shared by every orchestrator so the per-conversation guard spans requests
    conversation_locks = providers.Singleton(
        "api.features.interview.locks.ConversationLocks",
    )

    turn_orchestrator = providers.Factory(
        "api.features.interview.service.TurnOrchestrator",
        session_factory=infrastructure.database.provided.get_session,
        generator=infrastructure.generator,
        classifier=classifier,
        windower=windower,
        state_machine=state_machine,
        locks=conversation_locks,
        session_window=timedelta(hours=SETTINGS.INTERVIEW.SESSION_WINDOW_HOURS),
        state_write_attempts=SETTINGS.INTERVIEW.STATE_WRITE_ATTEMPTS,
        bot_name=SETTINGS.INTERVIEW.BOT_NAME,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    interview_controller = providers.Factory(
        "api.features.interview.controller.InterviewController",
        turn_orchestrator=services.turn_orchestrator,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.main",
            "api.shared.db",
            "api.features.interview.router",
        ]
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)
