"""tfdeploy - build Lambdas and drive Terraform deployments.

This package provides orchestration around `make` for Lambda builds and a
pinned Terraform release for init/plan/apply against an S3 state backend.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
