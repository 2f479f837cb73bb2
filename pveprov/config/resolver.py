"""Merge defaults, overrides and interactive answers into a ProvisionRequest."""
from typing import Any, Callable, Mapping, Optional

from pveprov.config.profiles import FieldSpec, Profile
from pveprov.core.errors import ValidationError
from pveprov.core.logger import get_logger
from pveprov.models.request import ProvisionRequest
from pveprov.prompts import DefaultsSource

logger = get_logger(__name__)


def _display(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'yes' if value else 'no'
    return str(value)


class ParameterResolver:
    """Builds the immutable request for one run.

    Precedence per field: override, then (in interactive mode) a prompt
    pre-filled with the default, then the default itself. Overrides that fail
    validation are fatal; bad interactive answers are re-asked.
    """

    def __init__(
        self,
        profile: Profile,
        overrides: Optional[Mapping[str, Any]] = None,
        source=None,
        id_in_use: Optional[Callable[[int], bool]] = None,
        version_lookup: Optional[Callable[[], str]] = None,
    ):
        self.profile = profile
        self.overrides = dict(overrides or {})
        self.source = source or DefaultsSource()
        self.id_in_use = id_in_use
        self.version_lookup = version_lookup

        unknown = set(self.overrides) - set(profile.field_names())
        if unknown:
            raise ValidationError(
                ', '.join(sorted(unknown)), f"unknown setting for profile '{profile.name}'"
            )

    def _default(self, spec: FieldSpec) -> Any:
        value = self.profile.defaults.get(spec.name)
        if spec.name == 'version' and value is None:
            if self.version_lookup is None:
                raise ValidationError('version', "no version given and no release lookup available")
            value = self.version_lookup()
        return value

    def _ask(self, spec: FieldSpec, default: Any) -> Any:
        while True:
            if spec.choices:
                answer = self.source.select(spec.label, spec.choices, _display(default))
            else:
                answer = self.source.text(spec.label, _display(default))

            try:
                value = spec.parse(answer)
            except ValueError as e:
                self.source.notify(f"{spec.label}: {e}")
                continue

            if spec.name == 'vmid' and value is not None and self.id_in_use and self.id_in_use(value):
                self.source.notify(f"ID {value} is already in use.")
                continue
            return value

    def resolve_field(self, spec: FieldSpec) -> Any:
        if spec.name in self.overrides:
            try:
                return spec.parse(self.overrides[spec.name])
            except ValueError as e:
                raise ValidationError(spec.name, str(e)) from e

        default = self._default(spec)
        if self.source.interactive and spec.prompt:
            return self._ask(spec, default)

        if default is None:
            return None
        try:
            return spec.parse(default)
        except ValueError as e:
            raise ValidationError(spec.name, str(e)) from e

    def resolve(self) -> ProvisionRequest:
        """Resolve every field of the profile.

        Raises:
            ValidationError: An override or default is invalid
            UserCancelled: The operator aborted a prompt
        """
        values = {spec.name: self.resolve_field(spec) for spec in self.profile.fields}
        request = self.profile.build(values)
        logger.debug(f"Resolved request: {request}")
        return request
