"""Dependency injection container for the application."""

import os

import boto3
from dependency_injector import providers
from dependency_injector.containers import DeclarativeContainer

from webtoon_translator.config import Config
from webtoon_translator.infrastructure.gemini_client import GeminiClientFactory
from webtoon_translator.infrastructure.s3_client import S3ImageStore
from webtoon_translator.infrastructure.secrets_credential_source import (
    SecretsManagerCredentialSource,
)
from webtoon_translator.infrastructure.static_credential_source import (
    StaticCredentialSource,
)
from webtoon_translator.models.credential_source import (
    DRIVE_SCOPE,
    VISION_SCOPE,
    CredentialSource,
)
from webtoon_translator.services.batch_orchestrator import BatchConfig, BatchOrchestrator
from webtoon_translator.services.credential_pool import CredentialPoolManager
from webtoon_translator.services.image_preparer import ImagePreparer
from webtoon_translator.services.prompt_builder import PromptBuilder
from webtoon_translator.services.quality_service import QualityService
from webtoon_translator.services.text_extractor import TextExtractionService


def _create_session(config: Config) -> boto3.Session:
    """Create boto3 session.

    In Lambda: Uses execution role automatically.
    Locally: Uses AWS_PROFILE_TRANSLATOR from environment.
    """
    if os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        return boto3.Session(region_name=config.aws_region)

    profile = os.getenv("AWS_PROFILE_TRANSLATOR", "default")
    return boto3.Session(profile_name=profile, region_name=config.aws_region)


def _create_credential_source(config: Config, session: providers.Provider) -> CredentialSource:
    """Pick the key source from CREDENTIAL_BACKEND.

    The session is only built for SECRETS_MANAGER, so the ENV backend runs
    without AWS credentials.
    """
    if config.credential_backend == "SECRETS_MANAGER":
        return SecretsManagerCredentialSource(
            client=session().client("secretsmanager"),
            secret_name=config.credentials_secret_name,
        )
    return StaticCredentialSource(
        {
            VISION_SCOPE: config.credentials_for(VISION_SCOPE),
            DRIVE_SCOPE: config.credentials_for(DRIVE_SCOPE),
        }
    )


def _create_chapter_config(config: Config) -> BatchConfig:
    return BatchConfig(
        concurrency=config.chapter_concurrency,
        timeout_ms=config.chapter_timeout_ms,
        max_retries=0,
        retry_delay_ms=0,
    )


class DependenciesContainer(DeclarativeContainer):
    """DI container for the application."""

    config = providers.Singleton(Config)

    # Session (Lambda execution role or local AWS profile)
    session = providers.Singleton(_create_session, config=config)

    # Credential pools
    credential_source = providers.Singleton(
        _create_credential_source,
        config=config,
        session=session.provider,
    )

    pool_manager = providers.Singleton(
        CredentialPoolManager,
        source=credential_source,
    )

    # S3 image store
    s3_boto_client = providers.Singleton(
        lambda session: session.client("s3"),
        session=session,
    )

    image_store = providers.Singleton(
        S3ImageStore,
        client=s3_boto_client,
        default_bucket=config.provided.image_bucket,
    )

    # Gemini clients: one factory per model, each caching a client per key
    ocr_client_factory = providers.Singleton(
        GeminiClientFactory,
        model_name=config.provided.ocr_model,
        temperature=config.provided.temperature,
        max_tokens=config.provided.max_tokens,
    )

    review_client_factory = providers.Singleton(
        GeminiClientFactory,
        model_name=config.provided.review_model,
        temperature=config.provided.temperature,
        max_tokens=config.provided.max_tokens,
    )

    image_preparer = providers.Singleton(ImagePreparer)

    prompt_builder = providers.Singleton(PromptBuilder)

    batch_config = providers.Singleton(BatchConfig.from_config, config=config)

    orchestrator = providers.Singleton(
        BatchOrchestrator,
        default_config=batch_config,
    )

    text_extraction_service = providers.Singleton(
        TextExtractionService,
        pool_manager=pool_manager,
        client_factory=ocr_client_factory,
        image_store=image_store,
        image_preparer=image_preparer,
        prompt_builder=prompt_builder,
        orchestrator=orchestrator,
        max_batch_size=config.provided.max_batch_size,
        chapter_config=providers.Singleton(_create_chapter_config, config=config),
    )

    quality_service = providers.Singleton(
        QualityService,
        pool_manager=pool_manager,
        client_factory=review_client_factory,
        prompt_builder=prompt_builder,
        orchestrator=orchestrator,
    )
