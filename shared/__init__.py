"""
Shared Kernel

Building blocks shared by every settlement context: value objects,
the error taxonomy, the unit of work and the in-process message bus.
"""
