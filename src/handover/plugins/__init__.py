"""Handover plugin namespace package.

Brief:
    Groups resolve plugins under the ``handover.plugins`` namespace. Modules
    are imported lazily by handover.plugins.registry during discovery.

Inputs:
    - None.

Outputs:
    - Makes ``handover.plugins.base`` and ``handover.plugins.handover``
      importable by dotted path.
"""
