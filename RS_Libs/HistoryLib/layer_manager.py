"""
Layer Manager.

Pure operations over the layer stack of an ApplicationState. Layers are kept
bottom first (array order is paint order); panels display them top first.
Each operation returns a new state ready to be committed to history, so
every layer change is undoable.

Classes:
    EditTool: Active tool in the pro editor
    LayerSelection: Which layer (if any) is being re-edited
"""

from enum import Enum
from typing import List, Optional, Tuple
import logging
import uuid

from RS_Libs.constants import (
    LABEL_DELETE_LAYER,
    LABEL_GENERATE_LAYER,
    LABEL_REORDER_LAYERS,
    LABEL_UPDATE_LAYER,
)
from RS_Libs.errors import LayerNotFoundError
from RS_Libs.ImageEditingLib.image_models import ApplicationState, ImageBitmapRef, Layer

logger = logging.getLogger(__name__)


class EditTool(Enum):
    POINT = "point"
    SELECT = "select"
    BRUSH = "brush"
    ERASE = "erase"


DEFAULT_TOOL = EditTool.POINT


def new_layer_id() -> str:
    return uuid.uuid4().hex


def _index_of(layers: Tuple[Layer, ...], layer_id: str) -> int:
    for idx, layer in enumerate(layers):
        if layer.id == layer_id:
            return idx
    raise LayerNotFoundError(f"No layer with id '{layer_id}'")


def add_layer(state: ApplicationState, layer: Layer) -> ApplicationState:
    """Append a layer on top of the stack."""
    if state.find_layer(layer.id) is not None:
        raise ValueError(f"Layer id '{layer.id}' already exists")
    return state.with_layers(state.layers + (layer,), LABEL_GENERATE_LAYER)


def update_layer(
    state: ApplicationState,
    layer_id: str,
    image: ImageBitmapRef,
    prompt: str,
) -> ApplicationState:
    """Replace a layer's image and prompt, keeping its position."""
    idx = _index_of(state.layers, layer_id)
    layers = list(state.layers)
    layers[idx] = layers[idx].with_image(image, prompt)
    return state.with_layers(layers, LABEL_UPDATE_LAYER)


def delete_layer(state: ApplicationState, layer_id: str) -> ApplicationState:
    """Remove a layer by id."""
    idx = _index_of(state.layers, layer_id)
    layers = list(state.layers)
    del layers[idx]
    return state.with_layers(layers, LABEL_DELETE_LAYER)


def reorder_layers(state: ApplicationState, dragged_id: str, target_id: str) -> ApplicationState:
    """
    Move the dragged layer into the target's slot.

    In the top-first panel the dragged layer lands right next to the target,
    on the side it was dragged towards: dragging up places it directly above
    the target, dragging down directly below. In array (bottom-first) terms
    the dragged layer is removed and reinserted at the target's index.

    Raises:
        LayerNotFoundError: If either id is missing
    """
    from_index = _index_of(state.layers, dragged_id)
    to_index = _index_of(state.layers, target_id)

    layers: List[Layer] = list(state.layers)
    if from_index != to_index:
        moved = layers.pop(from_index)
        layers.insert(to_index, moved)
        logger.debug(f"Moved layer {dragged_id} from {from_index} to {to_index}")

    return state.with_layers(layers, LABEL_REORDER_LAYERS)


def visual_order(state: ApplicationState) -> List[Layer]:
    """Layers as a panel shows them, topmost first."""
    return list(reversed(state.layers))


class LayerSelection:
    """At most one layer of the current state is active at a time."""

    def __init__(self):
        self._active_id: Optional[str] = None

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def select(self, layer_id: str) -> None:
        self._active_id = layer_id

    def clear(self) -> None:
        self._active_id = None

    def is_active(self, layer_id: str) -> bool:
        return self._active_id is not None and self._active_id == layer_id

    def resolve(self, state: Optional[ApplicationState]) -> Optional[Layer]:
        """The active Layer object in `state`, or None."""
        if state is None or self._active_id is None:
            return None
        return state.find_layer(self._active_id)
