"""
infragraph: declarative resource graphs for containerized stacks.

Declare networks, clusters, services and the wiring between them through
``TopologyBuilder``; ``finalize()`` validates the whole graph and returns a
read-only ``ResourceGraph`` ready for synthesis.
"""

__version__ = "0.1.0"
