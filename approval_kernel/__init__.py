"""
Approval Kernel

The approval workflow engine of the project-operations dashboard:
- Rule matching on change kind and magnitude
- Approver resolution through an injected directory
- Unanimous multi-party decisions with single-rejection veto
- Exactly-once application of approved changes
"""

__version__ = "0.1.0"
