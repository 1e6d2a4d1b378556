"""hemocount — automated hemocytometer cell counting and trypan-blue viability.

The processing stages live in subpackages (``segment``, ``viability``,
``counting``); ``hemocount.pipeline.CountingPipeline`` runs them end to end.
"""

__version__ = "0.1.0"
