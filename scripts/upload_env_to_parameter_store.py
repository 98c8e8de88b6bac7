#!/usr/bin/env python3
"""
Push the KASY settings from a .env file into AWS Parameter Store.

Both spellings are accepted in the file: ``OPENAI_API_KEY`` and the
``KASY_OPENAI_API_KEY`` form the Lambdas read locally. API keys are stored as
SecureString, everything else as String.

Run from the repository root:

    python -m scripts.upload_env_to_parameter_store --dry-run
"""

import sys
from pathlib import Path

import boto3
import click
from botocore.exceptions import ClientError
from dotenv import dotenv_values

from services.calculations import RemainderPolicy
from services.parameter_store import PARAMETER_PREFIX, env_var_name

# parameter name under the prefix -> short .env variable
PARAMETERS = {
    "openai/api-key": "OPENAI_API_KEY",
    "openai/text-model": "OPENAI_TEXT_MODEL",
    "openai/vision-model": "OPENAI_VISION_MODEL",
    "split/remainder-policy": "REMAINDER_POLICY",
}

SECRET_MARKERS = ("api-key", "secret")


def is_secret(param_name: str) -> bool:
    return any(marker in param_name.lower() for marker in SECRET_MARKERS)


def mask(value: str) -> str:
    return value[:4] + "..."


def collect_parameters(values: dict, prefix: str = PARAMETER_PREFIX) -> dict:
    """
    Pick the known settings out of parsed .env values.

    The prefixed spelling wins when a file carries both.

    Raises:
        click.BadParameter: If the remainder policy is not one we support
    """
    parameters = {}
    for param_name, short_name in PARAMETERS.items():
        value = values.get(env_var_name(f"{prefix}/{param_name}")) or values.get(short_name)
        if value:
            parameters[param_name] = value.strip()

    policy = parameters.get("split/remainder-policy")
    allowed = [p.value for p in RemainderPolicy]
    if policy is not None and policy.lower() not in allowed:
        raise click.BadParameter(
            f"REMAINDER_POLICY must be one of {', '.join(allowed)}, got {policy!r}"
        )

    return parameters


def upload_parameters(ssm, parameters: dict, prefix: str) -> int:
    """Upload every parameter; returns how many uploads failed."""
    failures = 0
    with click.progressbar(parameters.items(), label="Uploading parameters") as items:
        for param_name, value in items:
            full_name = f"{prefix}/{param_name}"
            try:
                response = ssm.put_parameter(
                    Name=full_name,
                    Value=value,
                    Type="SecureString" if is_secret(param_name) else "String",
                    Description=f"KASY setting {param_name}",
                    Overwrite=True,
                )
                click.secho(
                    f"Uploaded {full_name} (version {response['Version']})", fg="green"
                )
            except ClientError as e:
                failures += 1
                click.secho(f"Failed to upload {full_name}: {e}", fg="red", err=True)
    return failures


def verify_parameters(ssm, parameters: dict, prefix: str) -> None:
    click.secho("\nVerifying uploaded parameters...", fg="blue")

    for param_name in parameters:
        full_name = f"{prefix}/{param_name}"
        try:
            response = ssm.get_parameter(Name=full_name, WithDecryption=True)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ParameterNotFound":
                click.secho(f"{full_name} not found", fg="red")
            else:
                click.secho(f"Error checking {full_name}: {e}", fg="red")
            continue
        click.secho(
            f"{full_name} exists (version {response['Parameter']['Version']})",
            fg="green",
        )


@click.command()
@click.option("--env-file", default=".env", help="Path to .env file", show_default=True)
@click.option(
    "--prefix", default=PARAMETER_PREFIX, help="Parameter Store prefix", show_default=True
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be uploaded without uploading"
)
@click.option("--verify", is_flag=True, help="Read the parameters back after uploading")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(env_file: str, prefix: str, dry_run: bool, verify: bool, verbose: bool):
    """
    Upload the OpenAI key, model names and split settings to Parameter Store.
    """
    if not Path(env_file).exists():
        click.secho(f"Error: {env_file} file not found", fg="red", err=True)
        sys.exit(1)

    if verbose:
        click.secho(f"Loading settings from {env_file}", fg="blue")

    prefix = prefix.rstrip("/")
    parameters = collect_parameters(dotenv_values(env_file), prefix)

    if not parameters:
        click.secho("No KASY settings found in the .env file", fg="red", err=True)
        click.echo(f"Expected variables: {', '.join(PARAMETERS.values())}", err=True)
        sys.exit(1)

    click.secho(f"Found {len(parameters)} parameters", fg="green")

    if dry_run:
        click.secho("DRY RUN - Would upload the following parameters:", fg="blue")
        for param_name, value in parameters.items():
            shown = mask(value) if is_secret(param_name) else value
            click.echo(f"  {prefix}/{param_name} = {shown}")
        click.secho("\nDry run complete. Run without --dry-run to upload.", fg="blue")
        return

    ssm = boto3.client("ssm")
    failures = upload_parameters(ssm, parameters, prefix)

    if verify:
        verify_parameters(ssm, parameters, prefix)

    if failures:
        click.secho(f"\n{failures} parameter(s) failed to upload", fg="red", err=True)
        sys.exit(1)

    click.secho(f"\nParameters are now available under {prefix}", fg="green")


if __name__ == "__main__":
    main()
