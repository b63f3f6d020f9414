# SPDX-License-Identifier: MIT

import uuid

type EntityId = str
type ServerId = int


def generate_entity_id() -> EntityId:
    return str(uuid.uuid4())
