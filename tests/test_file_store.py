import pytest

from app.config import MAX_FILE_SIZE
from app.services.exceptions import NotFoundError, ValidationError
from app.services.file_store import ChunkedFileStore, split_content

PDF = "application/pdf"


class TestSplitContent:
    def test_exact_multiple(self):
        assert split_content("abcdef", 2) == ["ab", "cd", "ef"]

    def test_remainder(self):
        assert split_content("abcde", 2) == ["ab", "cd", "e"]

    def test_empty(self):
        assert split_content("", 10) == [""]

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            split_content("abc", 0)


class TestChunkedFileStore:
    def test_store_and_reconstruct(self, db):
        store = ChunkedFileStore(db)
        content = "data:application/pdf;base64," + "A" * 2500

        file_id = store.store(content, "nf.pdf", 1875, PDF, chunk_size=1000)

        chunks = store.list_chunks(file_id)
        assert [c.index for c in chunks] == [0, 1, 2]
        assert store.reconstruct(file_id) == content

    @pytest.mark.parametrize("content,chunk_size", [
        ("data:application/pdf;base64,QUJDREVGRw==", 1),
        ("data:application/pdf;base64,QUJDREVGRw==", 40),
        ("data:application/pdf;base64,QUJDREVGRw==", 41),
        ("data:application/pdf;base64,QUJDREVGRw==", 500),
        ("data:application/pdf;base64,QUJDREVGRw==", 7),
        ("", 1),
        ("", 800),
    ])
    def test_reconstruct_any_chunk_size(self, db, content, chunk_size):
        store = ChunkedFileStore(db)
        file_id = store.store(content, "nf.pdf", 10, PDF, chunk_size=chunk_size)

        expected_chunks = max(1, -(-len(content) // chunk_size))
        assert len(store.list_chunks(file_id)) == expected_chunks
        assert store.reconstruct(file_id) == content

    def test_chunk_out_of_order(self, db):
        store = ChunkedFileStore(db)
        stored = store.create_file("nf.pdf", 10, PDF)
        store.append_chunk(stored.id, 0, "AAA")

        with pytest.raises(ValidationError, match="esperado 1"):
            store.append_chunk(stored.id, 2, "CCC")

        with pytest.raises(ValidationError):
            store.append_chunk(stored.id, 0, "AAA")

        assert store.chunk_count(stored.id) == 1

    def test_no_chunks_is_not_found(self, db):
        store = ChunkedFileStore(db)
        stored = store.create_file("vazio.pdf", 0, PDF)
        with pytest.raises(NotFoundError):
            store.reconstruct(stored.id)

    def test_unknown_file(self, db):
        with pytest.raises(NotFoundError):
            ChunkedFileStore(db).append_chunk(42, 0, "x")

    def test_too_large(self, db):
        with pytest.raises(ValidationError, match="muito grande"):
            ChunkedFileStore(db).create_file("big.pdf", MAX_FILE_SIZE + 1, PDF)

    def test_mime_not_allowed(self, db):
        with pytest.raises(ValidationError, match="não permitido"):
            ChunkedFileStore(db).create_file("script.exe", 10, "application/x-msdownload")

    def test_limit_is_inclusive(self, db):
        stored = ChunkedFileStore(db).create_file("limite.png", MAX_FILE_SIZE, "image/png")
        assert stored.id is not None
