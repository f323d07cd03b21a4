"""
ShardKeeper - Pool and shard topology orchestration for replicated databases

A Python-based orchestration engine implementing:
- Pool state model (one master plus active/standby/backup replicas)
- Master promotion with per-node outcome reporting
- Four-phase shard split and open-ended shard cutover
- Spare node allocation by role and hardware likeness
- Priority-ordered pre/post callbacks around every mutating operation
"""

__version__ = "0.1.0"
__author__ = "ShardKeeper Team"
