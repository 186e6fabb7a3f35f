"""Model templates

A model template holds the equations of a model as ADMB procedure code
together with the names of the parameters and data roles that code refers to.
Parameters are available in the code under their own names and data under
``obs_<role>``, e.g. ``obs_catch``. The number of observations is ``nobs``.
The code must accumulate the negative log likelihood in ``f``.

Two surplus production models are built in, ``schaefer`` and ``fox``. Both
integrate the biomass dynamics from ``B(1) = K`` and use the survey index as
a relative abundance index with lognormal observation error where the
catchability ``q`` and the error standard deviation ``sigma`` are
concentrated out of the likelihood. Index values that are missing (or not
positive) are skipped.
"""

from __future__ import annotations

from typing import Optional, Union

from pyadmb.internals.immutable import Immutable


class ModelTemplate(Immutable):
    """Equations of a model in ADMB procedure code

    Parameters
    ----------
    name : str
        Name of the template
    procedure : str
        Code of the PROCEDURE_SECTION
    parameters : tuple
        Names of the parameters the code uses. None to accept any parameter names
    roles : tuple
        Names of the data roles the code uses
    variables : tuple
        Names of intermediate scalar variables (``number``) used by the code
    trajectories : tuple
        Names of the vectors over the time index that the code computes and that
        are written to the report
    reference_values : tuple
        Names of derived scalars that the code computes. These are reported with
        standard errors (sdreport) and written to the report
    optional_roles : tuple
        Names of data roles the code can use when they are bound
    """

    def __init__(
        self,
        name: str,
        procedure: str,
        parameters: Optional[tuple[str, ...]] = None,
        roles: tuple[str, ...] = (),
        variables: tuple[str, ...] = (),
        trajectories: tuple[str, ...] = (),
        reference_values: tuple[str, ...] = (),
        optional_roles: tuple[str, ...] = (),
    ):
        self.name = name
        self.procedure = procedure
        self.parameters = tuple(parameters) if parameters is not None else None
        self.roles = tuple(roles)
        self.variables = tuple(variables)
        self.trajectories = tuple(trajectories)
        self.reference_values = tuple(reference_values)
        self.optional_roles = tuple(optional_roles)

    @property
    def declared_names(self) -> tuple[str, ...]:
        """All names the template declares itself in the generated code"""
        return self.variables + self.trajectories + self.reference_values

    def __eq__(self, other):
        return isinstance(other, ModelTemplate) and vars(self) == vars(other)

    def __hash__(self):
        return hash((self.name, self.procedure, self.parameters, self.roles))

    def __repr__(self):
        return f'ModelTemplate("{self.name}")'


_biomass_dynamics = """\
penalty = 0.0;
biomass(1) = K;
for (int t = 1; t < nobs; t++)
{{
  biomass(t + 1) = biomass(t) + {surplus} - obs_catch(t);
  biomass(t + 1) = posfun(biomass(t + 1), 1.0e-3 * value(K), penalty);
}}
depletion = biomass / K;
"""

_concentrated_likelihood = """\
double nused = 0.0;
dvariable logq = 0.0;
for (int t = 1; t <= nobs; t++)
{
  if (obs_index(t) > 0.0)
  {
    logq += log(obs_index(t) / biomass(t));
    nused += 1.0;
  }
}
logq /= nused;
q = exp(logq);
dvariable ssq = 0.0;
for (int t = 1; t <= nobs; t++)
{
  if (obs_index(t) > 0.0)
  {
    ssq += square(log(obs_index(t)) - logq - log(biomass(t)));
  }
}
sigma = sqrt(ssq / nused);
f += 0.5 * nused * log(ssq / nused) + 1000.0 * penalty;
"""

SCHAEFER = ModelTemplate(
    name='schaefer',
    procedure=(
        _biomass_dynamics.format(surplus='r * biomass(t) * (1.0 - biomass(t) / K)')
        + _concentrated_likelihood
        + "MSY = r * K / 4.0;\n"
        + "Bmsy = K / 2.0;\n"
        + "Fmsy = r / 2.0;\n"
    ),
    parameters=('r', 'K'),
    roles=('catch', 'index'),
    variables=('q', 'sigma', 'penalty'),
    trajectories=('biomass', 'depletion'),
    reference_values=('MSY', 'Bmsy', 'Fmsy'),
)

FOX = ModelTemplate(
    name='fox',
    procedure=(
        _biomass_dynamics.format(surplus='r * biomass(t) * (1.0 - log(biomass(t)) / log(K))')
        + _concentrated_likelihood
        + "MSY = r * K / (exp(1.0) * log(K));\n"
        + "Bmsy = K / exp(1.0);\n"
        + "Fmsy = r / log(K);\n"
    ),
    parameters=('r', 'K'),
    roles=('catch', 'index'),
    variables=('q', 'sigma', 'penalty'),
    trajectories=('biomass', 'depletion'),
    reference_values=('MSY', 'Bmsy', 'Fmsy'),
)

_templates: dict[str, ModelTemplate] = {}


def register_template(template: ModelTemplate):
    """Make a template available by name"""
    if not isinstance(template, ModelTemplate):
        raise TypeError(f'Expected a ModelTemplate, got {type(template)}')
    _templates[template.name] = template


def get_template(template: Union[str, ModelTemplate]) -> ModelTemplate:
    """Look up a registered template by name"""
    if isinstance(template, ModelTemplate):
        return template
    try:
        return _templates[template]
    except KeyError:
        raise KeyError(
            f'Unknown model template "{template}". Available: {", ".join(sorted(_templates))}'
        ) from None


def template_names() -> list[str]:
    return sorted(_templates)


register_template(SCHAEFER)
register_template(FOX)
