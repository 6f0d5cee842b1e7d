"""
RS_Libs - Retouch Studio Library Modules

This package contains the core of the Retouch Studio photo editor,
organized into specialized sub-packages:

- ImageEditingLib: Bitmap models, layer compositing, masks and export
- HistoryLib: Non-destructive edit history and layer management
- EntitlementLib: Credit / monthly quota accounting and the edit gate
- RemoteLib: Proxy transport and the generative model service
- SessionLib: Editor session command dispatch and one-click solutions
"""

__version__ = "0.1.0"
