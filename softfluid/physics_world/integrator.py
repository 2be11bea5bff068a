"""Fixed-step time integration for bodies exposing the state/derivative contract."""

from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np

from .bodies import PhysicsBody


class DynamicBody(Protocol):
    def get_state(self) -> np.ndarray: ...

    def get_derivative(self, state: np.ndarray) -> np.ndarray: ...

    def update_state(self, change: np.ndarray, bodies: Sequence[PhysicsBody]) -> None: ...


class ExplicitEulerIntegrator:
    """change = f(y) * dt"""

    name = "euler"

    def change(self, body: DynamicBody, dt: float) -> np.ndarray:
        return body.get_derivative(body.get_state()) * dt

    def step(self, body: DynamicBody, bodies: Sequence[PhysicsBody], dt: float) -> None:
        if dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {dt}")
        body.update_state(self.change(body, dt), bodies)


class RK4Integrator(ExplicitEulerIntegrator):
    """Classic fourth-order Runge-Kutta on the body's state vector."""

    name = "rk4"

    def change(self, body: DynamicBody, dt: float) -> np.ndarray:
        state = body.get_state()
        k1 = body.get_derivative(state)
        k2 = body.get_derivative(state + 0.5 * dt * k1)
        k3 = body.get_derivative(state + 0.5 * dt * k2)
        k4 = body.get_derivative(state + dt * k3)
        return (k1 + 2.0 * k2 + 2.0 * k3 + k4) * (dt / 6.0)


INTEGRATORS = {
    ExplicitEulerIntegrator.name: ExplicitEulerIntegrator,
    RK4Integrator.name: RK4Integrator,
}


def make_integrator(name: str) -> ExplicitEulerIntegrator:
    try:
        return INTEGRATORS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown integrator '{name}', expected one of {sorted(INTEGRATORS)}") from None
