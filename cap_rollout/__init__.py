"""
Readiness polling and rollout orchestration for CAP on Kubernetes.
"""
__version__ = "1.0.0"
