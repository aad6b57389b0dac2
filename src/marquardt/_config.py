from __future__ import annotations

import dataclasses
import functools
from collections.abc import Callable
from typing import Annotated, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import dataclass_transform

__all__ = [
    "component",
    "ComponentConfig",
    "UnionConfig",
]


T = TypeVar("T")


@dataclass_transform(field_specifiers=(dataclasses.field,))  # type: ignore[literal-required]
def component(cls: T | None = None, **kwargs) -> T | Callable:
    """
    Decorator to convert a class into a mutable dataclass used as a solver component.

    Solver components are the pieces a single least-squares solve is assembled
    from: the problem definition, the iteration state and its buffers, the
    damped linear solvers.  They are plain dataclasses, mutable unless
    ``frozen=True`` is passed, and are usually constructed from a
    :py:class:`ComponentConfig` through its ``build()`` method.

    Parameters
    ----------
    cls : type, optional
        The class to convert into a component dataclass
    **kwargs : dict
        Additional keyword arguments passed to dataclasses.dataclass().

    Returns
    -------
    decorated_class : type
        The decorated class, now a dataclass marked as a component.

    Examples
    --------
    >>> import numpy as np
    >>> from marquardt._config import component
    >>>
    >>> @component
    >>> class Scaling:
    ...     factor: float = 2.0
    ...
    ...     def __call__(self, x: np.ndarray) -> np.ndarray:
    ...         return self.factor * x

    See Also
    --------
    ComponentConfig : Base class for component configuration
    """
    # Support passing arguments to the decorator (e.g. @component(frozen=True))
    if cls is None:
        return functools.partial(component, **kwargs)

    if "_marquardt_component" in cls.__dict__:
        return cls

    data_cls = dataclasses.dataclass(**kwargs)(cls)  # type: ignore
    data_cls._marquardt_component = True  # type: ignore[attr-defined]
    return data_cls  # type: ignore[return-value]


class ComponentConfig(BaseModel):
    """
    Base class for validated solver configuration.

    Subclasses declare a literal ``type`` field used as the discriminator when
    several configurations are combined with :py:class:`UnionConfig`, and
    implement ``build()`` to construct the configured component.

    Examples
    --------
    >>> from typing import Literal
    >>> from marquardt._config import ComponentConfig
    >>>
    >>> class ScalingConfig(ComponentConfig):
    ...     type: Literal["scaling"] = "scaling"
    ...     factor: float = 2.0
    ...
    ...     def build(self) -> Scaling:
    ...         return Scaling(self.factor)

    See Also
    --------
    UnionConfig : Create discriminated unions of ComponentConfig subclasses
    component : Decorator for solver components
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    # When printing the config, show the class name and fields only but
    # not the type field
    def __repr__(self):
        rep = super().__repr__()
        if hasattr(self, "type"):
            return rep.replace(f"type='{self.type}', ", "")
        return rep

    def build(self):
        raise NotImplementedError("Subclasses must implement the build() method.")


class UnionConfig:
    """
    Discriminated union of ComponentConfig subclasses.

    Usage:
        AnyConfig = UnionConfig[ConfigTypeA, ConfigTypeB]

    Equivalent to:
        AnyConfig = Annotated[
            Union[ConfigTypeA, ConfigTypeB],
            Field(discriminator="type"),
        ]
    """

    def __class_getitem__(cls, item) -> Type:
        if not isinstance(item, tuple):
            item = (item,)

        for config_type in item:
            if not (
                isinstance(config_type, type) and issubclass(config_type, ComponentConfig)
            ):
                raise TypeError(
                    f"{config_type} must be a subclass of ComponentConfig. "
                    f"UnionConfig is only for ComponentConfig discriminated unions."
                )

        return Annotated[Union[item], Field(discriminator="type")]
