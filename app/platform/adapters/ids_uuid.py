import uuid
from app.platform.ports.identifiers import IdentifierPort

class UuidIdentifiers(IdentifierPort):
    def new_id(self) -> str:
        return str(uuid.uuid4())
