"""
Registration Kernel

Approval workflow engine for ERP registration requests:
- Draft -> multi-level approval -> ERP synchronization
- Workflow snapshot frozen at submission
- Level-scoped approver resolution (individuals + groups)
- Per-level field editability with change auditing
- Atomic level advancement under concurrent approvals
"""

__version__ = "0.1.0"
