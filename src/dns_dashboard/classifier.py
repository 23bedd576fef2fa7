from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

import structlog
from pydantic_ai import Agent
from pydantic_ai.exceptions import UnexpectedModelBehavior
from pydantic_ai.models import Model

from .config import Settings
from .errors import ClassifierUnavailable, EnrichmentFailed
from .models import BatchClassificationResult, Classification
from .yaml_config import get_prompts

log = structlog.get_logger()


class Classifier(ABC):
    """Maps a set of domains to classifications.

    Implementations must return an entry for every requested domain, using
    `Classification.unknown()` for the ones they could not classify, and raise
    `ClassifierUnavailable` only when no usable response was obtained at all.
    """

    @abstractmethod
    async def classify(self, domains: Iterable[str]) -> dict[str, Classification]: ...


def _normalize(domain: str) -> str:
    return domain.strip().lower().rstrip(".")


def build_model(settings: Settings) -> Model:
    if settings.classifier_provider == "ollama":
        from pydantic_ai.models.openai import OpenAIChatModel
        from pydantic_ai.providers.ollama import OllamaProvider

        return OpenAIChatModel(
            model_name=settings.ollama_model,
            provider=OllamaProvider(base_url=f"{settings.ollama_base_url}/v1"),
        )

    if not settings.gemini_api_key:
        raise ClassifierUnavailable("AI analysis unavailable: missing Gemini API key")

    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    return GoogleModel(
        settings.gemini_model,
        provider=GoogleProvider(api_key=settings.gemini_api_key),
    )


class LLMClassifier(Classifier):
    """Classify a whole batch of domains with a single structured LLM call.

    An instance is bound to the model it was built with; to change model or
    credentials build a new instance instead of mutating this one.
    """

    def __init__(
        self,
        model: Model,
        *,
        instructions: str | None = None,
        prompt_template: str | None = None,
        retries: int = 3,
    ) -> None:
        prompts = get_prompts() if instructions is None or prompt_template is None else {}
        self._prompt_template = prompt_template or prompts["bulk_user_prompt"]
        self._model_name = getattr(model, "model_name", type(model).__name__)
        self._agent: Agent[None, BatchClassificationResult] = Agent(
            model,
            output_type=BatchClassificationResult,
            instructions=instructions or prompts["classifier_system_prompt"],
            retries=retries,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMClassifier:
        return cls(build_model(settings))

    @property
    def model_name(self) -> str:
        return self._model_name

    def _format_prompt(self, domains: list[str]) -> str:
        return self._prompt_template.format(
            domain_list="\n".join(f"- {d}" for d in domains),
        )

    async def classify(self, domains: Iterable[str]) -> dict[str, Classification]:
        wanted = sorted(set(domains))
        if not wanted:
            return {}

        log.info("classifying_batch", domains=len(wanted), model=self._model_name)
        try:
            result = await self._agent.run(self._format_prompt(wanted))
        except UnexpectedModelBehavior as e:
            log.exception("llm_output_unusable", domains=len(wanted))
            raise EnrichmentFailed(f"classifier output unusable: {e}") from e
        except Exception as e:
            log.exception("llm_batch_failed", domains=len(wanted))
            raise ClassifierUnavailable(f"classifier request failed: {e}") from e

        returned = {
            _normalize(c.domain): Classification.model_validate(c.model_dump(exclude={"domain"}))
            for c in result.output.classifications
        }
        if not any(_normalize(d) in returned for d in wanted):
            log.error("llm_output_incomplete", domains=len(wanted), returned=len(returned))
            raise EnrichmentFailed("classifier returned none of the requested domains")

        classified: dict[str, Classification] = {}
        missing = 0
        for d in wanted:
            found = returned.get(_normalize(d))
            if found is None:
                missing += 1
                found = Classification.unknown("Not identified by the classifier.")
            classified[d] = found

        log.info("batch_classified", results=len(classified), fallbacks=missing)
        return classified


class UnconfiguredClassifier(Classifier):
    """Stand-in used when no classifier backend could be built from settings."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    async def classify(self, domains: Iterable[str]) -> dict[str, Classification]:
        raise ClassifierUnavailable(self.reason)


def build_classifier(settings: Settings) -> Classifier:
    try:
        return LLMClassifier.from_settings(settings)
    except ClassifierUnavailable as e:
        log.warning("classifier_not_configured", provider=settings.classifier_provider, reason=str(e))
        return UnconfiguredClassifier(str(e))
