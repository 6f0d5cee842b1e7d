"""
HistoryLib - Edit history and layer stack management

Every image change is committed to the linear history, which owns (and
releases) the bitmaps its entries reference.
"""

from RS_Libs.HistoryLib.history_store import HistoryStore
from RS_Libs.HistoryLib.layer_manager import (
    EditTool,
    LayerSelection,
    add_layer,
    update_layer,
    delete_layer,
    reorder_layers,
    visual_order,
    new_layer_id,
)

__all__ = [
    "HistoryStore",
    "EditTool",
    "LayerSelection",
    "add_layer",
    "update_layer",
    "delete_layer",
    "reorder_layers",
    "visual_order",
    "new_layer_id",
]
