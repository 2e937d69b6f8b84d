"""
Operation handlers, grouped by family.

Each family module exposes ``operation_specs(settings)``; ``build_registry``
collects them into one frozen OperationRegistry.
"""

from toolhub.operations import image, pdf, text, utility
from toolhub.pipeline.registry import OperationRegistry
from toolhub.pipeline.settings import PipelineSettings

FAMILIES = (pdf, image, text, utility)


def build_registry(settings: PipelineSettings) -> OperationRegistry:
    registry = OperationRegistry()
    for family in FAMILIES:
        registry.register_all(family.operation_specs(settings))
    return registry.freeze()
