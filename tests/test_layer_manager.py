"""
Unit tests for layer stack operations and layer selection.
"""

import unittest

from PIL import Image

from RS_Libs.constants import (
    LABEL_DELETE_LAYER,
    LABEL_GENERATE_LAYER,
    LABEL_REORDER_LAYERS,
    LABEL_UPDATE_LAYER,
)
from RS_Libs.errors import LayerNotFoundError
from RS_Libs.HistoryLib.layer_manager import (
    LayerSelection,
    add_layer,
    delete_layer,
    new_layer_id,
    reorder_layers,
    update_layer,
    visual_order,
)
from RS_Libs.ImageEditingLib.image_models import ApplicationState, ImageBitmapRef, Layer


def _bitmap():
    return ImageBitmapRef.from_image(Image.new("RGBA", (4, 4), (0, 0, 0, 0)))


def _stack(*ids):
    state = ApplicationState(_bitmap())
    return state.with_layers([Layer(layer_id, _bitmap(), layer_id) for layer_id in ids], "Setup")


def _ids(state):
    return [layer.id for layer in state.layers]


class TestLayerEdits(unittest.TestCase):

    def test_add_layer_appends_on_top(self):
        state = add_layer(_stack("a"), Layer("b", _bitmap(), "hat"))
        self.assertEqual(_ids(state), ["a", "b"])
        self.assertEqual(state.description, LABEL_GENERATE_LAYER)

    def test_add_layer_rejects_duplicate_id(self):
        with self.assertRaises(ValueError):
            add_layer(_stack("a"), Layer("a", _bitmap(), "again"))

    def test_update_layer_keeps_position(self):
        image = _bitmap()
        state = update_layer(_stack("a", "b", "c"), "b", image, "new prompt")
        self.assertEqual(_ids(state), ["a", "b", "c"])
        self.assertIs(state.layers[1].image, image)
        self.assertEqual(state.layers[1].prompt, "new prompt")
        self.assertEqual(state.description, LABEL_UPDATE_LAYER)

    def test_delete_layer(self):
        state = delete_layer(_stack("a", "b"), "a")
        self.assertEqual(_ids(state), ["b"])
        self.assertEqual(state.description, LABEL_DELETE_LAYER)

    def test_missing_layer(self):
        with self.assertRaises(LayerNotFoundError):
            delete_layer(_stack("a"), "zzz")

    def test_original_state_is_unchanged(self):
        state = _stack("a", "b")
        delete_layer(state, "a")
        self.assertEqual(_ids(state), ["a", "b"])

    def test_new_layer_ids_are_unique(self):
        self.assertNotEqual(new_layer_id(), new_layer_id())


class TestReorderLayers(unittest.TestCase):
    """Layers are stored bottom first; panels show them top first."""

    def test_drag_up_lands_directly_above_target(self):
        # Panel (top first): d c b a. Drag a up onto c.
        state = reorder_layers(_stack("a", "b", "c", "d"), "a", "c")
        self.assertEqual(_ids(state), ["b", "c", "a", "d"])
        self.assertEqual([layer.id for layer in visual_order(state)], ["d", "a", "c", "b"])
        self.assertEqual(state.description, LABEL_REORDER_LAYERS)

    def test_drag_down_lands_directly_below_target(self):
        # Panel (top first): d c b a. Drag d down onto b.
        state = reorder_layers(_stack("a", "b", "c", "d"), "d", "b")
        self.assertEqual(_ids(state), ["a", "d", "b", "c"])
        self.assertEqual([layer.id for layer in visual_order(state)], ["c", "b", "d", "a"])

    def test_adjacent_swap(self):
        state = reorder_layers(_stack("a", "b"), "a", "b")
        self.assertEqual(_ids(state), ["b", "a"])

    def test_reorder_onto_itself(self):
        state = reorder_layers(_stack("a", "b"), "a", "a")
        self.assertEqual(_ids(state), ["a", "b"])

    def test_unknown_ids(self):
        with self.assertRaises(LayerNotFoundError):
            reorder_layers(_stack("a", "b"), "a", "x")


class TestLayerSelection(unittest.TestCase):

    def test_select_and_resolve(self):
        state = _stack("a", "b")
        selection = LayerSelection()
        self.assertIsNone(selection.resolve(state))

        selection.select("b")
        self.assertTrue(selection.is_active("b"))
        self.assertIs(selection.resolve(state), state.layers[1])

        selection.clear()
        self.assertIsNone(selection.active_id)

    def test_resolve_missing_layer(self):
        selection = LayerSelection()
        selection.select("gone")
        self.assertIsNone(selection.resolve(_stack("a")))
        self.assertIsNone(selection.resolve(None))
