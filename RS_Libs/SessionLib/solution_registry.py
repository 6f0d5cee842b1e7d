"""
Studio Solutions Registry.

This module provides a centralized registry for one-click studio solutions
(background remover, passport photo, restoration, ...). Each solution maps a
name to an executor plus the metadata the session needs to run it: loading
message, history label and whether it costs a credit.

Classes:
    SolutionRegistry: Registry for solution executors

Functions:
    get_default_registry: Get the global default registry (singleton)
    register_default_solutions: Register all built-in solutions
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from RS_Libs.ImageEditingLib.image_models import ImageBitmapRef

logger = logging.getLogger(__name__)

# Type alias for executor function: (service, flattened image) -> edited image
SolutionExecutor = Callable[[Any, ImageBitmapRef], ImageBitmapRef]


class SolutionRegistry:
    """
    Registry for studio solutions.

    Example:
        >>> registry = SolutionRegistry()
        >>> registry.register("Passport Photo", lambda svc, img: svc.passport_photo(img),
        ...                   is_high_value=True)
        >>> executor = registry.get("Passport Photo")
        >>> result = executor(service, image)
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._executors: Dict[str, SolutionExecutor] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    def register(
        self,
        name: str,
        executor: SolutionExecutor,
        description: str = "",
        loading_message: str = "",
        history_label: str = "",
        is_high_value: bool = False,
        prompt: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> None:
        """
        Register a solution.

        Args:
            name: Unique solution name shown to the user (e.g., "Passport Photo")
            executor: Callable accepting (service, image) and returning a new image
            description: Human-readable description
            loading_message: Message shown while the solution runs
            history_label: Description of the resulting history entry
            is_high_value: True if the solution costs a credit
            prompt: Instruction text for prompt-based solutions
            tags: Optional list of tags for categorization (e.g., ["portrait"])

        Raises:
            ValueError: If name is empty or executor is not callable
            RuntimeError: If name is already registered
        """
        name = str(name).strip()

        if not name:
            raise ValueError("name cannot be empty")

        if not callable(executor):
            raise ValueError(f"executor must be callable, got {type(executor)}")

        if name in self._executors:
            raise RuntimeError(
                f"Solution '{name}' is already registered. "
                f"Use unregister() first to replace it."
            )

        self._executors[name] = executor
        self._metadata[name] = {
            "description": str(description),
            "loading_message": loading_message or f"Applying {name}...",
            "history_label": history_label or f"Apply: {name}",
            "is_high_value": bool(is_high_value),
            "prompt": prompt,
            "tags": list(tags) if tags else [],
        }

        logger.debug(f"Registered solution: {name}")

    def unregister(self, name: str) -> bool:
        """
        Unregister a solution.

        Returns:
            True if unregistered, False if name was not registered
        """
        name = str(name).strip()

        if name in self._executors:
            del self._executors[name]
            del self._metadata[name]
            logger.debug(f"Unregistered solution: {name}")
            return True

        return False

    def get(self, name: str) -> SolutionExecutor:
        """
        Get the executor for a solution.

        Raises:
            KeyError: If name is not registered
        """
        name = str(name).strip()

        if name not in self._executors:
            available = ", ".join(self.list_solutions())
            raise KeyError(f"No solution named '{name}'. Available solutions: {available}")

        return self._executors[name]

    def has(self, name: str) -> bool:
        return str(name).strip() in self._executors

    def get_metadata(self, name: str) -> Dict[str, Any]:
        """
        Get metadata for a solution.

        Returns:
            Copy of the metadata dict

        Raises:
            KeyError: If name is not registered
        """
        name = str(name).strip()

        if name not in self._metadata:
            raise KeyError(f"No metadata for solution '{name}'")

        return dict(self._metadata[name])

    def get_prompt(self, name: str) -> Optional[str]:
        """Instruction text of a prompt-based solution, None otherwise."""
        return self.get_metadata(name)["prompt"]

    def list_solutions(self) -> List[str]:
        return sorted(self._executors.keys())

    def list_prompt_solutions(self) -> List[str]:
        """Names of solutions driven by a prompt rather than a dedicated call."""
        return [name for name in self.list_solutions() if self._metadata[name]["prompt"]]

    def filter_by_tag(self, tag: str) -> List[str]:
        """Get all solutions with a specific tag."""
        return [
            name
            for name, metadata in self._metadata.items()
            if tag in metadata.get("tags", [])
        ]

    def __len__(self) -> int:
        return len(self._executors)

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        return f"SolutionRegistry({len(self)} solutions)"


# Global default registry (singleton)
_default_registry: Optional[SolutionRegistry] = None


def get_default_registry() -> SolutionRegistry:
    """
    Get the global default solutions registry.

    Creates and initializes the registry on first call (lazy singleton).
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SolutionRegistry()
        register_default_solutions(_default_registry)

    return _default_registry


def _prompt_solution(prompt: str) -> SolutionExecutor:
    def execute(service: Any, image: ImageBitmapRef) -> ImageBitmapRef:
        return service.global_edit(image, prompt)
    return execute


def register_default_solutions(registry: SolutionRegistry) -> None:
    """Register all built-in studio solutions."""
    registry.register(
        name="Background Remover",
        executor=lambda service, image: service.remove_background(image),
        description="Instantly remove the background with perfect precision.",
        loading_message="Removing background...",
        history_label="Remove Background",
        is_high_value=True,
        tags=["scene", "background"],
    )

    registry.register(
        name="Beautify Background",
        executor=lambda service, image: service.beautify_background(image),
        description="AI-powered realistic enhancement of your existing background.",
        loading_message="Beautifying background...",
        history_label="Beautify Background",
        is_high_value=True,
        tags=["scene", "background"],
    )

    registry.register(
        name="Auto Portrait Enhance",
        executor=lambda service, image: service.auto_portrait_enhance(image),
        description="One-click professional portrait retouching.",
        loading_message="Applying Portrait Enhance...",
        history_label="Auto Portrait Enhance",
        is_high_value=True,
        tags=["portrait"],
    )

    registry.register(
        name="Passport Photo",
        executor=lambda service, image: service.passport_photo(image),
        description="Create a compliant passport or ID photo.",
        loading_message="Generating Passport Photo...",
        history_label="Passport Photo",
        is_high_value=True,
        tags=["portrait"],
    )

    auto_enhance = (
        "Automatically enhance the photo by adjusting contrast, brightness, and "
        "saturation for a more balanced and appealing look."
    )
    registry.register(
        name="Auto Enhance",
        executor=_prompt_solution(auto_enhance),
        description="One-click balance for contrast, brightness, and color.",
        prompt=auto_enhance,
        tags=["general"],
    )

    restoration = (
        "Restore this old photo. Remove scratches, creases, and artifacts. Enhance faded "
        "colors and improve the overall sharpness and detail, bringing the photo back to "
        "life while preserving its vintage character."
    )
    registry.register(
        name="Photo Restoration",
        executor=_prompt_solution(restoration),
        description="Repair old, scratched, or faded photos to bring them back to life.",
        is_high_value=True,
        prompt=restoration,
        tags=["general"],
    )

    logger.info("Registered default studio solutions")
