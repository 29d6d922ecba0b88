"""
Template synthesis for finalized resource graphs.

Turns a ResourceGraph into a CloudFormation-shaped template that a
provisioning engine can deploy.
"""

from infragraph.synth.template import (
    TemplateSynthesizer,
    logical_id,
    render_template,
    synthesize,
)

__all__ = [
    "TemplateSynthesizer",
    "logical_id",
    "render_template",
    "synthesize",
]
