from __future__ import annotations

import logging

from app.schemas import GroupCreate, GroupDetail, GroupSummary, GroupUpdate
from datastore.base import Backend
from models.records import Group
from services.sensors import to_summary

logger = logging.getLogger(__name__)


def _summary(group: Group) -> GroupSummary:
    return GroupSummary(
        id=group.id,
        name=group.name,
        created_at=group.created_at,
        updated_at=group.updated_at,
    )


class GroupService:
    """Owner-scoped groups of sensors."""

    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def create_group(self, user_id: str, request: GroupCreate) -> GroupSummary:
        name = request.name.strip()
        if not name:
            raise ValueError("Group name must not be blank.")
        group = self.backend.create_group(user_id, name)
        logger.info("Created group", extra={"group_id": group.id, "user_id": user_id})
        return _summary(group)

    def list_groups(self, user_id: str) -> list[GroupSummary]:
        return [_summary(group) for group in self.backend.list_groups(user_id)]

    def get_group(self, user_id: str, group_id: str) -> GroupDetail:
        group = self._owned_group(user_id, group_id)
        members = self.backend.list_group_sensors(group_id)
        member_ids = {sensor.id for sensor in members}
        available = [
            sensor
            for sensor in self.backend.list_sensors(user_id)
            if sensor.id not in member_ids
        ]
        return GroupDetail(
            **_summary(group).model_dump(),
            sensors=[to_summary(sensor) for sensor in members],
            available_sensors=[to_summary(sensor) for sensor in available],
        )

    def update_group(self, user_id: str, group_id: str, request: GroupUpdate) -> GroupSummary:
        self._owned_group(user_id, group_id)
        name = request.name.strip()
        if not name:
            raise ValueError("Group name must not be blank.")
        updated = self.backend.update_group(group_id, name)
        if updated is None:
            raise KeyError(f"Group {group_id!r} not found.")
        return _summary(updated)

    def add_sensor(self, user_id: str, group_id: str, sensor_id: str) -> GroupDetail:
        """Attach one of the caller's sensors to one of the caller's groups.

        Raises ``KeyError`` when either side is missing or owned by someone
        else; a duplicate membership surfaces as ``ConflictError`` from the
        backend.
        """
        self._owned_group(user_id, group_id)
        sensor = self.backend.get_sensor(sensor_id)
        if sensor is None or sensor.user_id != user_id:
            raise KeyError(f"Sensor {sensor_id!r} not found.")
        self.backend.add_sensor_to_group(group_id, sensor_id)
        logger.info(
            "Added sensor to group",
            extra={"group_id": group_id, "sensor_id": sensor_id, "user_id": user_id},
        )
        return self.get_group(user_id, group_id)

    def _owned_group(self, user_id: str, group_id: str) -> Group:
        group = self.backend.get_group(group_id)
        if group is None or group.user_id != user_id:
            raise KeyError(f"Group {group_id!r} not found.")
        return group
