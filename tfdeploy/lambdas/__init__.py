"""Lambda build module.

This module handles:
- Deciding whether a Terraform operation needs fresh Lambda builds
- Discovering Lambdas under the lambdas root
- Running the test and build steps for each Lambda
"""

from tfdeploy.lambdas.runner import LambdaBuildError
from tfdeploy.lambdas.service import (
    LambdaBuilder,
    LambdaDiscoveryError,
    MakeBuilder,
    build_lambda,
    build_lambdas,
    discover_lambdas,
    should_build_lambdas,
)

__all__ = [
    "LambdaBuildError",
    "LambdaBuilder",
    "LambdaDiscoveryError",
    "MakeBuilder",
    "build_lambda",
    "build_lambdas",
    "discover_lambdas",
    "should_build_lambdas",
]
