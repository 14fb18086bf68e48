from dataclasses import dataclass


@dataclass(frozen=True, kw_only=True)
class AwsConfig:
    """AWS configuration for a provisioning run.

    Both profile and region are optional overrides. When not specified, the standard
    AWS credential and region resolution chain applies (environment variables, SSO,
    shared credentials/config files, instance roles).

    ## Examples

    Use environment variables (CI/CD):
    ```python
    # Set in environment: AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION
    AwsConfig()
    ```

    Use a named profile and pin the region:
    ```python
    AwsConfig(profile="my-sso-profile", region="eu-west-1")
    ```
    """

    profile: str | None = None
    region: str | None = None
