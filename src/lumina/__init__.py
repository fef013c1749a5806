"""
Lumina

Batch photo editing core: AI request orchestration and the compositing
pipeline shared by previews and exports.
"""

__version__ = "0.1.0"
