"""
pets/route_store.py -- Persistence for recorded GPS routes and their samples.

A route owns an ordered, append-only list of coordinate samples. Writes that
touch both tables run in one engine.begin() transaction:

  create()           route row + initial coordinate batch
  add_coordinates()  one batch appended to an existing route

If any sample in a batch fails to insert (missing latitude, bad route id)
the whole transaction rolls back: create() leaves no route row behind and
add_coordinates() leaves the route exactly as it was.

Samples are returned ordered by recorded_at, then insertion order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import or_, select

from core.database import Database
from core.schema import pets, route_coordinates, routes
from pets.models import Route, RouteCoordinate

logger = logging.getLogger("petkeeper.routes")

_STAT_COLUMNS = ("ended_at", "distance_m", "duration_s", "avg_speed_mps")


class RouteStore:
    """Repository for Route and RouteCoordinate entities."""

    def __init__(self, db: Database) -> None:
        self.engine = db.engine

    def create(self, route: Route, coordinates: Iterable[RouteCoordinate] = ()) -> int:
        """Insert a route and its coordinate batch atomically; return the route id.

        Raises sqlalchemy.exc.IntegrityError (after rolling back) if the route
        or any sample violates a constraint.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                routes.insert().values(
                    pet_id=route.pet_id,
                    user_id=route.user_id,
                    started_at=route.started_at,
                    ended_at=route.ended_at,
                    distance_m=route.distance_m,
                    duration_s=route.duration_s,
                    avg_speed_mps=route.avg_speed_mps,
                )
            )
            route_id = result.inserted_primary_key[0]
            rows = [_coordinate_values(route_id, c) for c in coordinates]
            if rows:
                conn.execute(route_coordinates.insert(), rows)
        logger.info("Route %s created for pet %s with %d samples", route_id, route.pet_id, len(rows))
        return route_id

    def add_coordinates(self, route_id: int, coordinates: Iterable[RouteCoordinate]) -> int:
        """Append a batch of samples atomically. Returns the number inserted."""
        rows = [_coordinate_values(route_id, c) for c in coordinates]
        if not rows:
            return 0
        with self.engine.begin() as conn:
            conn.execute(route_coordinates.insert(), rows)
        return len(rows)

    def get(self, route_id: int, with_coordinates: bool = True) -> Route | None:
        query = (
            select(routes, pets.c.name.label("pet_name"))
            .select_from(routes.outerjoin(pets, pets.c.id == routes.c.pet_id))
            .where(routes.c.id == route_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
            if row is None:
                return None
            route = _row_to_route(row)
            if with_coordinates:
                coords = conn.execute(
                    route_coordinates.select()
                    .where(route_coordinates.c.route_id == route_id)
                    .order_by(route_coordinates.c.recorded_at, route_coordinates.c.id)
                ).fetchall()
                route.coordinates = [_row_to_coordinate(c) for c in coords]
        return route

    def get_with_owner(self, route_id: int) -> tuple[Route, str] | None:
        """Return (route without samples, owner account id of its pet), or None."""
        query = (
            select(routes, pets.c.name.label("pet_name"), pets.c.owner_id)
            .select_from(routes.join(pets, pets.c.id == routes.c.pet_id))
            .where(routes.c.id == route_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            return None
        return _row_to_route(row), row.owner_id

    def list_for_pet(self, pet_id: int) -> list[Route]:
        query = (
            select(routes, pets.c.name.label("pet_name"))
            .select_from(routes.join(pets, pets.c.id == routes.c.pet_id))
            .where(routes.c.pet_id == pet_id)
            .order_by(routes.c.started_at.desc(), routes.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_route(r) for r in rows]

    def list_for_account(self, pet_ids: list[int], recorder_id: str) -> list[Route]:
        """Routes of the given pets plus any route recorder_id recorded, newest first."""
        condition = routes.c.user_id == recorder_id
        if pet_ids:
            condition = or_(condition, routes.c.pet_id.in_(pet_ids))
        query = (
            select(routes, pets.c.name.label("pet_name"))
            .select_from(routes.join(pets, pets.c.id == routes.c.pet_id))
            .where(condition)
            .order_by(routes.c.started_at.desc(), routes.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_route(r) for r in rows]

    def update_stats(self, route_id: int, **stats) -> Route | None:
        """Partial update of ended_at / distance / duration / speed. None keeps the stored value."""
        values = {k: v for k, v in stats.items() if k in _STAT_COLUMNS and v is not None}
        if values:
            with self.engine.begin() as conn:
                conn.execute(routes.update().where(routes.c.id == route_id).values(**values))
        return self.get(route_id, with_coordinates=False)

    def delete(self, route_id: int) -> bool:
        """Delete a route. Its samples are removed by the ON DELETE CASCADE."""
        with self.engine.begin() as conn:
            result = conn.execute(routes.delete().where(routes.c.id == route_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _coordinate_values(route_id: int, c: RouteCoordinate) -> dict:
    return {
        "route_id": route_id,
        "latitude": c.latitude,
        "longitude": c.longitude,
        "altitude": c.altitude,
        "accuracy": c.accuracy,
        "recorded_at": c.recorded_at,
        "speed_mps": c.speed_mps,
    }


def _row_to_route(row) -> Route:
    return Route(
        id=row.id,
        pet_id=row.pet_id,
        user_id=row.user_id,
        started_at=row.started_at,
        ended_at=row.ended_at,
        distance_m=row.distance_m,
        duration_s=row.duration_s,
        avg_speed_mps=row.avg_speed_mps,
        pet_name=row.pet_name,
    )


def _row_to_coordinate(row) -> RouteCoordinate:
    return RouteCoordinate(
        id=row.id,
        latitude=row.latitude,
        longitude=row.longitude,
        altitude=row.altitude,
        accuracy=row.accuracy,
        recorded_at=row.recorded_at,
        speed_mps=row.speed_mps,
    )
