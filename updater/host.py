"""GitHub Actions host environment: inputs, outputs and run status."""

import os
import uuid
from collections.abc import Mapping

from .errors import ConfigurationError
from .logger import ActionLogger


def _to_command_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class ActionEnvironment:
    """Reads action inputs and publishes outputs like @actions/core does.

    Inputs come from ``INPUT_<NAME>`` variables. Outputs are appended to the
    file named by ``GITHUB_OUTPUT`` when it is set and are always kept in
    :attr:`outputs` so callers and tests can inspect them.
    """

    def __init__(self, log: ActionLogger, environ: Mapping[str, str] | None = None):
        self.log = log
        self.environ = os.environ if environ is None else environ
        self.outputs: dict[str, str] = {}
        self.failed: str | None = None

    def get_env(self, name: str) -> str:
        return self.environ.get(name, "").strip()

    def get_input(self, name: str, required: bool = False) -> str:
        """Return an action input, stripped; empty string when unset."""
        key = f"INPUT_{name.replace(' ', '_').upper()}"
        value = self.environ.get(key, "").strip()
        if required and not value:
            raise ConfigurationError(f"Input required and not supplied: {name} (required parameter)")
        return value

    def set_output(self, name: str, value: object) -> None:
        rendered = _to_command_value(value)
        self.outputs[name] = rendered

        output_file = self.environ.get("GITHUB_OUTPUT")
        if not output_file:
            self.log.debug(f"Output {name}={rendered}")
            return

        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        with open(output_file, "a", encoding="utf-8") as handle:
            handle.write(f"{name}<<{delimiter}\n{rendered}\n{delimiter}\n")

    def set_outputs(self, outputs: Mapping[str, object]) -> None:
        for name, value in outputs.items():
            self.set_output(name, value)

    def set_failed(self, message: str) -> None:
        """Mark the run as failed; the CLI turns this into exit code 1."""
        self.failed = message
        self.log.error(message)
