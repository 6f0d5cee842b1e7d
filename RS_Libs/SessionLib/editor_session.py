"""
Editor Session.

Explicit command dispatch over the history store, layer selection, mask and
entitlement gate. There is no UI here: a front end calls the commands and
renders the public attributes (`error`, `loading_message`, `upgrade_prompt`,
the variant option lists, ...).

Primary edits are serialized: while one is in flight the next is rejected
with BusyError. Each primary edit captures a session token (upload
generation + identity of the current history entry) and refuses to commit
if the token changed by the time the remote result arrives. Stale results
are released and never charged.

Every command that changes the image past the layer stack flattens first
and commits a new base with no layers.
"""

from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Iterator, List, Optional, Tuple
import logging
import threading

from RS_Libs.config import StudioConfig
from RS_Libs.constants import (
    DEFAULT_BRUSH_SIZE,
    DOWNLOAD_CATEGORY_COMPARISON,
    DOWNLOAD_CATEGORY_EDIT,
    LABEL_APPLY_CROP,
    LABEL_EXPAND,
    LABEL_PROFILE_PICTURE,
    LABEL_REMOVE_OBJECT,
    LABEL_SMART_BACKGROUND,
    LABEL_STYLE_TRANSFER,
    LABEL_UNCROP,
    MIME_PNG,
)
from RS_Libs.errors import (
    BusyError,
    StaleResultError,
    StudioError,
    UpgradeRequiredError,
    ValidationError,
)
from RS_Libs.EntitlementLib.entitlement_gate import EntitlementGate, OperationValue
from RS_Libs.HistoryLib.history_store import NAVIGATION_EVENTS, HistoryStore
from RS_Libs.HistoryLib import layer_manager
from RS_Libs.HistoryLib.layer_manager import DEFAULT_TOOL, EditTool, LayerSelection
from RS_Libs.ImageEditingLib.compositor import CanvasCompositor
from RS_Libs.ImageEditingLib.export_ops import (
    DownloadArtifact,
    ExportOptions,
    encode_image,
    make_download_filename,
)
from RS_Libs.ImageEditingLib.image_models import (
    ApplicationState,
    CropRect,
    Hotspot,
    ImageBitmapRef,
    ImageGeometry,
    Layer,
)
from RS_Libs.RemoteLib.fan_out import VariantResult
from RS_Libs.RemoteLib.generative_service import GenerativeService, Suggestion
from RS_Libs.SessionLib.solution_registry import SolutionRegistry, get_default_registry

logger = logging.getLogger(__name__)

SessionToken = Tuple[int, Optional[ApplicationState]]


def reports_errors(error_prefix: str = "") -> Callable:
    """
    Decorator catching StudioError at the session boundary.

    Upgrade prompts go to `upgrade_prompt`, everything else to `error`.
    BusyError is re-raised so the in-flight edit keeps its own state.
    The wrapped command returns False when an error was recorded.
    """
    def decorator(method: Callable) -> Callable:
        @wraps(method)
        def wrapper(self: "EditorSession", *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except BusyError:
                raise
            except UpgradeRequiredError as e:
                self.upgrade_prompt = (e.title, str(e))
                logger.info(f"Upgrade required: {e.title}")
                return False
            except (ValidationError, StaleResultError) as e:
                self.error = str(e)
                return False
            except StudioError as e:
                self.error = f"{error_prefix} {e}".strip()
                logger.error(f"{method.__name__} failed: {e}")
                return False
        return wrapper
    return decorator


def _release_result(result: Any) -> None:
    """Release bitmaps of a result that will never be committed."""
    if isinstance(result, ImageBitmapRef):
        result.release()
    elif isinstance(result, (list, tuple)):
        for item in result:
            _release_result(item.value if isinstance(item, VariantResult) else item)


class EditorSession:
    """
    One editing session over one uploaded image at a time.

    Args:
        service: GenerativeService performing remote edits
        gate: EntitlementGate charging successful edits
        compositor: Canvas compositor (flatten, crop, collage, watermark)
        config: Session configuration
        registry: Studio solutions registry (default: built-in solutions)
    """

    def __init__(
        self,
        service: GenerativeService,
        gate: EntitlementGate,
        compositor=CanvasCompositor,
        config: Optional[StudioConfig] = None,
        registry: Optional[SolutionRegistry] = None,
    ):
        self.service = service
        self.gate = gate
        self.compositor = compositor
        self.config = config or StudioConfig()
        self.registry = registry or get_default_registry()

        self.history = HistoryStore()
        self.history.add_listener(self._on_history_event)
        self.selection = LayerSelection()

        self.active_tool: EditTool = DEFAULT_TOOL
        self.brush_size: int = DEFAULT_BRUSH_SIZE
        self.mask: Optional[ImageBitmapRef] = None
        self.hotspot: Optional[Hotspot] = None
        self.prompt: str = ""

        self.error: Optional[str] = None
        self.loading_message: Optional[str] = None
        self.upgrade_prompt: Optional[Tuple[str, str]] = None

        self.smart_background_options: List[VariantResult] = []
        self.profile_picture_options: List[VariantResult] = []
        self.suggestions: List[Suggestion] = []

        self._busy = threading.Lock()
        self._state_lock = threading.RLock()
        self._generation = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def current(self) -> Optional[ApplicationState]:
        return self.history.current

    @property
    def active_layer(self) -> Optional[Layer]:
        return self.selection.resolve(self.history.current)

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def _require_state(self, message: str = "No image loaded to apply an edit to.") -> ApplicationState:
        state = self.history.current
        if state is None:
            raise ValidationError(message)
        return state

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _on_history_event(self, event: str) -> None:
        if event in NAVIGATION_EVENTS:
            self.selection.clear()
            self.hotspot = None
            self._replace_mask(None)

    def _replace_mask(self, mask: Optional[ImageBitmapRef]) -> None:
        """Swap the selection mask, releasing the one it supersedes."""
        previous, self.mask = self.mask, mask
        if previous is not None and previous is not mask:
            previous.release()

    def _token(self) -> SessionToken:
        return (self._generation, self.history.current)

    def _is_current(self, token: SessionToken) -> bool:
        generation, state = token
        return generation == self._generation and state is self.history.current

    @contextmanager
    def _flattened(self, state: ApplicationState) -> Iterator[ImageBitmapRef]:
        """Flattened bitmap of `state`, released afterwards if it was transient."""
        flat = self.compositor.flatten(state)
        try:
            yield flat
        finally:
            if flat is not state.base_image:
                flat.release()

    def _run_edit(
        self,
        message: str,
        work: Callable[[], Any],
        apply: Callable[[Any], None],
        value: Optional[OperationValue],
        check_stale: bool = True,
    ) -> Any:
        """
        Run a primary edit.

        Args:
            message: Loading message shown while the edit runs
            work: Performs the remote/local computation and returns a result
            apply: Commits the result (only called if the session is unchanged)
            value: How the edit is charged, or None for free edits
            check_stale: Refuse results that arrive after the image changed

        Raises:
            BusyError: If another primary edit is in flight
            StaleResultError: If the image changed while the edit was running
        """
        if not self._busy.acquire(blocking=False):
            raise BusyError("Another edit is already in progress.")

        try:
            with self._state_lock:
                token = self._token()
            self.loading_message = message
            self.error = None

            def operation():
                result = work()
                with self._state_lock:
                    if check_stale and not self._is_current(token):
                        _release_result(result)
                        logger.warning(f"Discarded stale result of '{message}'")
                        raise StaleResultError(
                            "The image changed while the edit was running. The result was discarded."
                        )
                    apply(result)
                return result

            if value is None:
                return operation()
            return self.gate.perform(operation, value)
        finally:
            self.loading_message = None
            self._busy.release()

    def _commit_base(self, image: ImageBitmapRef, description: str) -> None:
        self.history.commit(ApplicationState(base_image=image, layers=(), description=description))

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def upload(self, image: ImageBitmapRef) -> ApplicationState:
        """Start a new history from an uploaded image."""
        with self._state_lock:
            self._generation += 1
            self._clear_options()
            self.error = None
            self.prompt = ""
            self.active_tool = DEFAULT_TOOL
            state = self.history.load(image)
        logger.info(f"Uploaded image {image.id} (generation {self._generation})")
        return state

    def upload_new(self) -> None:
        """Drop the current image and history."""
        with self._state_lock:
            self._generation += 1
            self._clear_options()
            self.history.clear()
            self.error = None
            self.prompt = ""

    # ------------------------------------------------------------------
    # Tool state
    # ------------------------------------------------------------------
    def set_prompt(self, prompt: str) -> None:
        self.prompt = str(prompt)

    def set_tool(self, tool) -> None:
        self.active_tool = EditTool(tool)

    def set_brush_size(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"brush size must be positive, got {size}")
        self.brush_size = int(size)

    def set_mask(self, mask: Optional[ImageBitmapRef]) -> None:
        self._replace_mask(mask)

    def set_hotspot(self, display_x: float, display_y: float, geometry: ImageGeometry) -> Optional[Hotspot]:
        """
        Handle a click on the image.

        With the point tool the click becomes the edit hotspot (clearing the
        layer selection and mask). With the select tool it triggers a smart
        selection instead. Clicks are ignored while a layer is active and
        while the brush or eraser is in use.
        """
        if self.active_layer is not None:
            return None
        if self.active_tool not in (EditTool.POINT, EditTool.SELECT):
            return None

        hotspot = Hotspot.from_display(display_x, display_y, geometry)
        if self.active_tool is EditTool.SELECT:
            self.smart_select(hotspot)
            return hotspot

        self.hotspot = hotspot
        self.selection.clear()
        self._replace_mask(None)
        return hotspot

    def clear_hotspot(self) -> None:
        self.hotspot = None

    # ------------------------------------------------------------------
    # Layer edits
    # ------------------------------------------------------------------
    @reports_errors("Failed to generate the image.")
    def generate(self) -> bool:
        """
        Generate a new layer, or regenerate the active layer, from the prompt.

        Uses the mask if one is painted, otherwise the hotspot. Charged as a
        standard edit.
        """
        state = self._require_state("No image loaded to edit.")
        active = self.active_layer
        prompt = self.prompt.strip()
        if not prompt:
            raise ValidationError(
                "Please describe your changes to the layer." if active
                else "Please enter a description for your edit."
            )
        if self.mask is None and self.hotspot is None:
            raise ValidationError("Please select an area on the image to edit.")

        mask, hotspot = self.mask, (None if self.mask is not None else self.hotspot)

        def work() -> ImageBitmapRef:
            return self.service.edit(state.base_image, prompt, hotspot=hotspot, mask=mask)

        def apply(layer_image: ImageBitmapRef) -> None:
            state = self.history.current
            if active is not None and state.find_layer(active.id) is not None:
                new_state = layer_manager.update_layer(state, active.id, layer_image, prompt)
                layer_id = active.id
            else:
                layer_id = layer_manager.new_layer_id()
                new_state = layer_manager.add_layer(state, Layer(layer_id, layer_image, prompt))
            self.history.commit(new_state)
            self.selection.select(layer_id)
            self.hotspot = None

        self._run_edit(
            "Updating layer..." if active else "Generating new layer...",
            work, apply, OperationValue.STANDARD,
        )
        return True

    @reports_errors()
    def select_layer(self, layer_id: Optional[str]) -> bool:
        """Make a layer active for re-editing, or clear the selection with None."""
        if layer_id is None:
            self.selection.clear()
            return True
        state = self._require_state()
        if state.find_layer(layer_id) is None:
            raise ValidationError(f"No layer with id '{layer_id}'")
        self.selection.select(layer_id)
        self.hotspot = None
        self._replace_mask(None)
        self.active_tool = EditTool.BRUSH
        return True

    @reports_errors()
    def delete_layer(self, layer_id: str) -> bool:
        self._require_state()

        def apply(new_state: ApplicationState) -> None:
            self.history.commit(new_state)
            if self.selection.is_active(layer_id):
                self.selection.clear()
                self.active_tool = DEFAULT_TOOL

        self._run_edit(
            "Deleting layer...",
            lambda: layer_manager.delete_layer(self.history.current, layer_id),
            apply,
            None,
        )
        return True

    @reports_errors()
    def reorder_layer(self, dragged_id: str, target_id: str) -> bool:
        self._require_state()
        self._run_edit(
            "Reordering layers...",
            lambda: layer_manager.reorder_layers(self.history.current, dragged_id, target_id),
            self.history.commit,
            None,
        )
        return True

    # ------------------------------------------------------------------
    # Flattening edits
    # ------------------------------------------------------------------
    def _flattening_edit(
        self,
        message: str,
        description: str,
        value: Optional[OperationValue],
        edit: Callable[[ImageBitmapRef], ImageBitmapRef],
    ) -> bool:
        self._require_state()

        def work() -> ImageBitmapRef:
            with self._flattened(self.history.current) as flat:
                return edit(flat)

        def apply(image: ImageBitmapRef) -> None:
            self._commit_base(image, description)
            self.selection.clear()

        self._run_edit(message, work, apply, value)
        return True

    @reports_errors("Failed to remove the object.")
    def remove_object(self) -> bool:
        """Remove whatever the painted mask covers."""
        self._require_state("Please use the brush to select an area to remove.")
        mask = self.mask
        if mask is None:
            raise ValidationError("Please use the brush to select an area to remove.")

        result = self._flattening_edit(
            "Removing selected object...",
            LABEL_REMOVE_OBJECT,
            OperationValue.STANDARD,
            lambda flat: self.service.remove_object(flat, mask),
        )
        self.hotspot = None
        self._replace_mask(None)
        return result

    @reports_errors("Failed to apply the edit.")
    def apply_global_edit(
        self,
        edit_fn: Callable[..., ImageBitmapRef],
        prompt: str,
        message: str,
        description: str,
        value: OperationValue = OperationValue.STANDARD,
        hotspot: Optional[Hotspot] = None,
    ) -> bool:
        """
        Apply a prompt-driven edit to the flattened image.

        Args:
            edit_fn: Called as edit_fn(image, prompt) or edit_fn(image, prompt, hotspot)
            prompt: Instruction for the edit
            message: Loading message
            description: History label of the result
            value: How the edit is charged
            hotspot: Optional focus point in natural pixels
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Please enter a description for your edit.")

        def edit(flat: ImageBitmapRef) -> ImageBitmapRef:
            if hotspot is None:
                return edit_fn(flat, prompt)
            return edit_fn(flat, prompt, hotspot)

        return self._flattening_edit(message, description, value, edit)

    @reports_errors("Failed to apply the edit.")
    def apply_parameterless_edit(
        self,
        edit_fn: Callable[[ImageBitmapRef], ImageBitmapRef],
        message: str,
        description: str,
        value: OperationValue = OperationValue.HIGH,
    ) -> bool:
        return self._flattening_edit(message, description, value, edit_fn)

    @reports_errors("Failed to apply the edit.")
    def apply_solution(self, name: str) -> bool:
        """Run a registered one-click studio solution."""
        if not self.registry.has(name):
            raise ValidationError(f"Unknown studio solution: {name}")

        executor = self.registry.get(name)
        metadata = self.registry.get_metadata(name)
        value = OperationValue.HIGH if metadata["is_high_value"] else OperationValue.STANDARD
        return self._flattening_edit(
            metadata["loading_message"],
            metadata["history_label"],
            value,
            lambda flat: executor(self.service, flat),
        )

    def apply_filter(self, prompt: str) -> bool:
        return self.apply_global_edit(
            self.service.apply_filter, prompt, "Applying creative filter...", "Creative Filter"
        )

    def apply_adjustment(self, prompt: str) -> bool:
        """Global adjustment, focused on the current hotspot if one is set."""
        return self.apply_global_edit(
            self.service.global_edit, prompt, "Applying adjustment...", "Adjustment",
            OperationValue.STANDARD, self.hotspot,
        )

    def apply_effect(self, prompt: str, name: str) -> bool:
        return self.apply_global_edit(
            self.service.global_edit, prompt, f"Applying {name} effect...", f"Effect: {name}"
        )

    def apply_scene(self, prompt: str) -> bool:
        return self.apply_global_edit(
            self.service.global_edit, prompt, "Generating new scene...", "Scene Change", OperationValue.HIGH
        )

    def apply_shadow(self, prompt: str, name: str) -> bool:
        return self.apply_global_edit(
            self.service.add_shadow, prompt, f"Adding {name}...", f"Shadow: {name}", OperationValue.HIGH
        )

    @reports_errors("Failed to apply sharpening.")
    def apply_sharpen(self, intensity: int) -> bool:
        if not (0 <= intensity <= 100):
            raise ValidationError(f"Sharpen intensity must be between 0 and 100, got {intensity}.")
        return self._flattening_edit(
            f"Applying sharpen ({intensity}%)...",
            f"Sharpen ({intensity}%)",
            OperationValue.STANDARD,
            lambda flat: self.service.sharpen(flat, intensity),
        )

    @reports_errors("Failed to transfer the style.")
    def apply_style_transfer(self, style_image: ImageBitmapRef, intensity: int) -> bool:
        if style_image is None:
            raise ValidationError("Please choose a style image.")
        if not (0 <= intensity <= 100):
            raise ValidationError(f"Style intensity must be between 0 and 100, got {intensity}.")
        return self._flattening_edit(
            "Transferring style...",
            LABEL_STYLE_TRANSFER,
            OperationValue.HIGH,
            lambda flat: self.service.transfer_style(flat, style_image, intensity),
        )

    @reports_errors("Failed to reimagine the scene.")
    def uncrop_reimagine(self, aspect_ratio: str) -> bool:
        if not aspect_ratio:
            raise ValidationError("Please choose an aspect ratio.")
        return self._flattening_edit(
            "Reimagining your scene...",
            LABEL_UNCROP,
            OperationValue.HIGH,
            lambda flat: self.service.uncrop_and_reimagine(flat, aspect_ratio),
        )

    @reports_errors("Failed to expand the image.")
    def generative_expand(self, new_width: int, new_height: int, offset_x: int, offset_y: int) -> bool:
        """Outpaint onto a larger canvas with the current image at the given offset."""
        state = self._require_state()
        width, height = state.base_image.size
        if new_width < width or new_height < height:
            raise ValidationError(
                f"The expanded canvas ({new_width}x{new_height}) must be at least the image size ({width}x{height})."
            )
        if not (0 <= offset_x <= new_width - width and 0 <= offset_y <= new_height - height):
            raise ValidationError("The image must lie entirely inside the expanded canvas.")
        if (new_width, new_height) == (width, height):
            raise ValidationError("The expanded canvas must be larger than the image.")

        return self._flattening_edit(
            "Expanding your image...",
            LABEL_EXPAND,
            OperationValue.HIGH,
            lambda flat: self.service.generative_expand(flat, new_width, new_height, offset_x, offset_y),
        )

    @reports_errors("Failed to apply the crop.")
    def apply_crop(self, crop_rect: Optional[CropRect], pixel_ratio: Optional[float] = None) -> bool:
        """Crop the flattened image. Local and free."""
        state = self._require_state()
        if crop_rect is None:
            raise ValidationError("Please select an area to crop.")

        def apply(image: ImageBitmapRef) -> None:
            self._commit_base(image, LABEL_APPLY_CROP)
            self.selection.clear()

        self._run_edit(
            "Applying crop...",
            lambda: self.compositor.crop(state, crop_rect, pixel_ratio),
            apply,
            None,
        )
        return True

    # ------------------------------------------------------------------
    # Variant pickers (charged once when opened)
    # ------------------------------------------------------------------
    def _subject_variants(self, generate: Callable[[ImageBitmapRef], List[VariantResult]]) -> List[VariantResult]:
        with self._flattened(self.history.current) as flat:
            subject = self.service.remove_background(flat)
        try:
            return generate(subject)
        finally:
            subject.release()

    @reports_errors("Smart Background failed.")
    def open_smart_background(self) -> bool:
        """Cut out the subject and generate background options to pick from."""
        self._require_state("No image loaded.")
        self._discard_options("smart_background_options")

        def apply(options: List[VariantResult]) -> None:
            self.smart_background_options = list(options)

        self._run_edit(
            "Generating background options...",
            lambda: self._subject_variants(self.service.generate_background_variants),
            apply,
            OperationValue.HIGH,
        )
        return True

    @reports_errors("Failed to apply the background.")
    def apply_smart_background(self, option: VariantResult) -> bool:
        return self._apply_option("smart_background_options", option, LABEL_SMART_BACKGROUND,
                                  "Applying new background...")

    @reports_errors("Profile Picture Designer failed.")
    def open_profile_picture_designer(self) -> bool:
        """Cut out the subject and generate profile picture designs to pick from."""
        self._require_state("No image loaded.")
        self._discard_options("profile_picture_options")

        def apply(options: List[VariantResult]) -> None:
            self.profile_picture_options = list(options)

        self._run_edit(
            "Designing profile pictures...",
            lambda: self._subject_variants(self.service.generate_profile_pictures),
            apply,
            OperationValue.HIGH,
        )
        return True

    @reports_errors("Failed to apply the design.")
    def apply_profile_picture(self, option: VariantResult) -> bool:
        return self._apply_option("profile_picture_options", option, LABEL_PROFILE_PICTURE,
                                  "Applying new design...")

    def _apply_option(self, attribute: str, option: VariantResult, description: str, message: str) -> bool:
        options: List[VariantResult] = getattr(self, attribute)
        if not any(option is candidate for candidate in options):
            raise ValidationError("That option is no longer available.")
        self._require_state()

        def apply(image: ImageBitmapRef) -> None:
            self._commit_base(image, description)
            self.selection.clear()
            for candidate in options:
                if candidate is not option:
                    candidate.value.release()
            setattr(self, attribute, [])

        self._run_edit(message, lambda: option.value, apply, None, check_stale=False)
        return True

    def _discard_options(self, attribute: str) -> None:
        _release_result(getattr(self, attribute))
        setattr(self, attribute, [])

    def _clear_options(self) -> None:
        self._discard_options("smart_background_options")
        self._discard_options("profile_picture_options")
        self.suggestions = []

    # ------------------------------------------------------------------
    # Selection helpers
    # ------------------------------------------------------------------
    @reports_errors("Failed to generate the selection.")
    def smart_select(self, hotspot: Optional[Hotspot] = None) -> bool:
        """Ask the model for a mask of the object at the hotspot."""
        state = self._require_state("No image loaded to select from.")
        hotspot = hotspot or self.hotspot
        if hotspot is None:
            raise ValidationError("Please click on the object you want to select.")
        self._replace_mask(None)

        def work() -> ImageBitmapRef:
            with self._flattened(state) as flat:
                return self.service.generate_mask_for_object(flat, hotspot)

        def apply(mask: ImageBitmapRef) -> None:
            self._replace_mask(mask)
            self.active_tool = EditTool.BRUSH

        self._run_edit("Generating smart selection...", work, apply, None)
        return True

    # ------------------------------------------------------------------
    # Auxiliary (not serialized, not charged)
    # ------------------------------------------------------------------
    def enhance_prompt(self) -> str:
        """Replace the prompt with an enhanced version. Keeps it on failure."""
        if not self.prompt.strip():
            return self.prompt
        self.prompt = self.service.enhance_prompt(self.prompt)
        return self.prompt

    @reports_errors("Failed to get suggestions.")
    def get_suggestions(self) -> bool:
        state = self._require_state("No image loaded.")
        self.suggestions = []
        self.error = None
        with self._flattened(state) as flat:
            self.suggestions = self.service.get_suggestions(flat)
        return True

    def apply_suggestion(self, suggestion: Suggestion) -> bool:
        return self.apply_global_edit(
            self.service.global_edit,
            suggestion.prompt,
            f"Applying {suggestion.title}...",
            f"Suggestion: {suggestion.title}",
        )

    # ------------------------------------------------------------------
    # History navigation
    # ------------------------------------------------------------------
    def undo(self) -> bool:
        with self._state_lock:
            return self.history.undo()

    def redo(self) -> bool:
        with self._state_lock:
            return self.history.redo()

    @reports_errors()
    def revert(self, index: int) -> bool:
        with self._state_lock:
            self.history.revert(index)
        return True

    def reset(self) -> None:
        self.error = None
        with self._state_lock:
            self.history.reset()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    @reports_errors("Failed to process the download.")
    def download(self, options: Optional[ExportOptions] = None):
        """
        Produce the download files for the current state.

        Noise reduction, upscaling and the comparison collage call the remote
        model or build extra files and are charged one credit together. A
        plain export is free.

        Returns:
            List of DownloadArtifact (the edit, then the collage if requested),
            or False if an error was recorded
        """
        options = options or ExportOptions()
        state = self._require_state("No image loaded.")
        original = self.history.original
        artifacts: List[DownloadArtifact] = []

        def work() -> List[DownloadArtifact]:
            transient: List[ImageBitmapRef] = []
            try:
                current = self.compositor.flatten(state)
                if current is not state.base_image:
                    transient.append(current)

                if options.noise_reduction != "off":
                    self.loading_message = f"Reducing noise ({options.noise_reduction})..."
                    current = self.service.reduce_noise(current, options.noise_reduction)
                    transient.append(current)

                if options.upscale:
                    self.loading_message = "Upscaling image..."
                    current = self.service.upscale(current)
                    transient.append(current)

                self.loading_message = "Processing final image..."
                image = current.open()
                if options.add_watermark:
                    image = self.compositor.apply_watermark(image, self.config.watermark_text)

                results = [DownloadArtifact(
                    filename=make_download_filename(DOWNLOAD_CATEGORY_EDIT, options.extension),
                    data=encode_image(image, options),
                    mime_type=options.mime_type,
                )]

                if options.include_comparison:
                    self.loading_message = "Generating comparison collage..."
                    collage = self.compositor.build_comparison_collage(original.base_image, current)
                    try:
                        results.append(DownloadArtifact(
                            filename=make_download_filename(DOWNLOAD_CATEGORY_COMPARISON, "png"),
                            data=collage.data,
                            mime_type=MIME_PNG,
                        ))
                    finally:
                        collage.release()
                return results
            finally:
                for bitmap in transient:
                    bitmap.release()

        value = OperationValue.HIGH if options.requires_credit else None
        self._run_edit("Preparing download...", work, artifacts.extend, value, check_stale=False)
        logger.info(f"Prepared {len(artifacts)} download file(s)")
        return artifacts

    # ------------------------------------------------------------------
    # Dialogs and teardown
    # ------------------------------------------------------------------
    def dismiss_error(self) -> None:
        self.error = None
        self.upgrade_prompt = None

    def close(self) -> None:
        """Release everything the session holds."""
        with self._state_lock:
            self._generation += 1
            self._clear_options()
            self.history.remove_listener(self._on_history_event)
            self.history.clear()
        self.selection.clear()
        self.hotspot = None
        self._replace_mask(None)
        logger.info("Closed editor session")
