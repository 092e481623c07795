"""
Task Type Classifier.

Assigns each user request one of the ``TaskType`` categories so the
coordinator can pick a weak or strong model for it.

Two strategies:
- KeywordTaskClassifier: scans the prompt for category keywords
- ModelTaskClassifier: asks a (weak) model for a one-word category
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import structlog

from switchboard.models.types import Content, TaskType

from .generators import ContentGenerator

logger = structlog.get_logger(__name__)

CLASSIFICATION_TEMPERATURE = 0.1

# Checked in this order; the first category with a matching keyword wins.
TASK_KEYWORDS: tuple[tuple[TaskType, tuple[str, ...]], ...] = (
    (
        TaskType.EXPLORATION,
        ("understand", "explore", "find", "discover", "show me", "what is", "how does", "explain"),
    ),
    (
        TaskType.PLANNING,
        ("plan", "design", "architect", "approach", "strategy", "break down"),
    ),
    (
        TaskType.TROUBLESHOOTING,
        ("debug", "fix", "error", "issue", "problem", "troubleshoot"),
    ),
    (
        TaskType.REVIEW,
        ("review", "analyze", "audit", "suggestions", "improve", "optimize"),
    ),
    (
        TaskType.DOCUMENTATION,
        ("document", "readme", "comment", "docs", "api doc"),
    ),
)

CLASSIFICATION_PROMPT = """Given the following user request and conversation history, classify the task type.

Task Types:
- EXPLORATION: Understanding codebase structure, finding files, discovering patterns
- PLANNING: Designing features, architectural decisions, breaking down complex tasks
- TROUBLESHOOTING: Debugging, fixing errors, investigating issues
- REVIEW: Code review, analysis, security audits, performance evaluation
- DOCUMENTATION: Writing docs, README files, comments, API documentation
- IMPLEMENTATION: Writing code, making edits, executing planned changes

User Request: "{prompt}"

Respond with only the task type, nothing else."""


def parse_task_type(reply: Optional[str]) -> TaskType:
    """
    Map a model reply onto a task type.

    The reply is upper-cased and matched against the member names;
    anything else is IMPLEMENTATION.
    """
    name = (reply or "").strip().upper()
    return TaskType.__members__.get(name, TaskType.IMPLEMENTATION)


class BaseTaskClassifier(ABC):
    """Base class for task classifiers."""

    strategy: str = "base"
    uses_generator: bool = True

    @abstractmethod
    async def classify(
        self,
        prompt: str,
        history: Optional[Sequence[Content]] = None,
        generator: Optional[ContentGenerator] = None,
    ) -> TaskType:
        """
        Classify a user request.

        Args:
            prompt: The user's request
            history: Prior conversation turns
            generator: Generator to use for model-assisted classification

        Returns:
            The task type; never raises
        """
        pass


class KeywordTaskClassifier(BaseTaskClassifier):
    """Heuristic classifier driven by keyword sets in priority order."""

    strategy = "heuristic"
    uses_generator = False

    def __init__(
        self,
        keywords: tuple[tuple[TaskType, tuple[str, ...]], ...] = TASK_KEYWORDS,
    ):
        self.keywords = keywords

    def classify_text(self, prompt: str) -> TaskType:
        text = prompt.lower()
        for task_type, keywords in self.keywords:
            matched = next((keyword for keyword in keywords if keyword in text), None)
            if matched:
                logger.debug("task_classified", task_type=task_type.value, keyword=matched)
                return task_type

        logger.debug("task_classified", task_type=TaskType.IMPLEMENTATION.value, keyword=None)
        return TaskType.IMPLEMENTATION

    async def classify(
        self,
        prompt: str,
        history: Optional[Sequence[Content]] = None,
        generator: Optional[ContentGenerator] = None,
    ) -> TaskType:
        return self.classify_text(prompt)


class ModelTaskClassifier(BaseTaskClassifier):
    """
    Classifier that asks a model for the category.

    Any failure (no generator, transport error, unrecognized reply) falls
    back to IMPLEMENTATION.
    """

    strategy = "model"

    def __init__(self, temperature: float = CLASSIFICATION_TEMPERATURE):
        self.temperature = temperature

    async def classify(
        self,
        prompt: str,
        history: Optional[Sequence[Content]] = None,
        generator: Optional[ContentGenerator] = None,
    ) -> TaskType:
        if generator is None:
            logger.warning("task_classification_failed", error="no generator available")
            return TaskType.IMPLEMENTATION

        request = [Content.from_text("user", CLASSIFICATION_PROMPT.format(prompt=prompt))]

        try:
            response = await generator.generate_content(request, temperature=self.temperature)
            reply = response.text
        except Exception as e:
            logger.warning(
                "task_classification_failed",
                model=getattr(generator, "model", None),
                error=str(e),
            )
            return TaskType.IMPLEMENTATION

        task_type = parse_task_type(reply)
        logger.debug(
            "task_classified",
            task_type=task_type.value,
            reply=(reply or "")[:40],
            history_turns=len(history or ()),
        )
        return task_type


def create_classifier(strategy: str = "model") -> BaseTaskClassifier:
    """
    Factory function to create a task classifier.

    Args:
        strategy: "model" or "heuristic"

    Returns:
        Configured classifier instance
    """
    if strategy == "heuristic":
        return KeywordTaskClassifier()
    if strategy == "model":
        return ModelTaskClassifier()
    raise ValueError(f"Unknown classifier strategy: {strategy}")
