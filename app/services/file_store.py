"""
Armazenamento de Arquivos em Pedaços
app/services/file_store.py

Anexos chegam como data URL (base64) e são gravados em linhas de até
CHUNK_SIZE caracteres, numeradas a partir de 0. A reconstrução é a
concatenação na ordem do índice.

Fluxo do cliente:
  1. POST /api/files            → {id}
  2. POST /api/files/{id}/chunks  (índice 0, 1, 2... em sequência)
  3. GET  /api/files/{id}       → conteúdo remontado
"""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ALLOWED_FILE_TYPES, CHUNK_SIZE, MAX_FILE_SIZE
from app.models import FileChunk, StoredFile
from app.services.exceptions import NotFoundError, StorageError, ValidationError
from app.utils.formatters import format_file_size

logger = logging.getLogger(__name__)


def split_content(content: str, size: int = CHUNK_SIZE) -> List[str]:
    """Divide em pedaços de `size` caracteres. Conteúdo vazio gera um pedaço vazio."""
    if size <= 0:
        raise ValueError("size deve ser positivo")
    if not content:
        return [""]
    return [content[i:i + size] for i in range(0, len(content), size)]


def validate_upload(size: int, mime_type: str):
    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"Arquivo muito grande ({format_file_size(size)}). "
            f"Limite: {format_file_size(MAX_FILE_SIZE)}"
        )
    if mime_type not in ALLOWED_FILE_TYPES:
        raise ValidationError(f"Tipo de arquivo não permitido: {mime_type}")


class ChunkedFileStore:

    def __init__(self, db: Session):
        self.db = db

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(str(e)) from e

    def get_file(self, file_id: int) -> StoredFile:
        stored = self.db.query(StoredFile).filter(StoredFile.id == file_id).first()
        if not stored:
            raise NotFoundError(f"Arquivo #{file_id} não encontrado")
        return stored

    def create_file(self, name: str, size: int, mime_type: str) -> StoredFile:
        validate_upload(size, mime_type)

        stored = StoredFile(name=name, size=size, mime_type=mime_type)
        self.db.add(stored)
        self._commit()
        self.db.refresh(stored)

        logger.info(f"Arquivo #{stored.id} criado: {name} ({format_file_size(size)})")
        return stored

    def chunk_count(self, file_id: int) -> int:
        return self.db.query(FileChunk).filter(FileChunk.file_id == file_id).count()

    def append_chunk(self, file_id: int, index: int, content: str) -> FileChunk:
        """
        Grava o pedaço `index`. Os índices devem chegar em sequência:
        o próximo aceito é sempre a quantidade de pedaços já gravados.
        """
        self.get_file(file_id)

        expected = self.chunk_count(file_id)
        if index != expected:
            raise ValidationError(
                f"Pedaço fora de ordem para o arquivo #{file_id}: "
                f"recebido {index}, esperado {expected}"
            )

        chunk = FileChunk(file_id=file_id, index=index, content=content)
        self.db.add(chunk)
        try:
            self.db.commit()
        except IntegrityError as e:
            # Dois envios simultâneos do mesmo índice
            self.db.rollback()
            raise ValidationError(f"Pedaço {index} já gravado para o arquivo #{file_id}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(str(e)) from e

        self.db.refresh(chunk)
        return chunk

    def list_chunks(self, file_id: int) -> List[FileChunk]:
        return (
            self.db.query(FileChunk)
            .filter(FileChunk.file_id == file_id)
            .order_by(FileChunk.index)
            .all()
        )

    def reconstruct(self, file_id: int) -> str:
        chunks = self.list_chunks(file_id)
        if not chunks:
            raise NotFoundError(f"Arquivo #{file_id} sem conteúdo")
        return "".join(c.content for c in chunks)

    def store(self, content: str, name: str, size: int, mime_type: str,
              chunk_size: int = CHUNK_SIZE) -> int:
        """Cria o arquivo e grava todos os pedaços. Devolve o id."""
        stored = self.create_file(name, size, mime_type)
        pieces = split_content(content, chunk_size)
        for index, piece in enumerate(pieces):
            self.append_chunk(stored.id, index, piece)

        logger.info(f"Arquivo #{stored.id}: {len(pieces)} pedaço(s) gravado(s)")
        return stored.id
