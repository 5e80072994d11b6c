"""
Provisioning and teardown of the VM scaling lab infrastructure.

Contains the AWS resource managers, the load generator client and the two lab
tasks (horizontal scaling and CloudWatch-driven auto-scaling).
"""

__version__ = "0.1.0"
