import threading
import time
import unittest
from unittest import mock

from ragetl.document import RagDocument
from ragetl.exceptions import EmbeddingCountMismatchError, FingerprintError
from ragetl.fingerprint import InMemoryFingerprintStore, chunk_key, compute_fingerprint
from ragetl.ingestion import RagIngestionService

from fakes import (
    BlockingReader,
    KeywordEmbeddingModel,
    ListReader,
    RecordingVectorStore,
    ShortEmbeddingModel,
    StableIdReader,
    TagTransformer,
)


def tagged(text, source="docs/a.md", index=0, **extra):
    metadata = {"source": source, "chunk_index": index}
    metadata.update(extra)
    return (text, metadata)


class TestIngestionConstruction(unittest.TestCase):
    def test_missing_collaborators_rejected(self):
        reader = ListReader([])
        model = KeywordEmbeddingModel()
        store = RecordingVectorStore()
        with self.assertRaises(ValueError):
            RagIngestionService(None, [], model, store)
        with self.assertRaises(ValueError):
            RagIngestionService(reader, [], None, store)
        with self.assertRaises(ValueError):
            RagIngestionService(reader, [], model, None)

    def test_transformers_and_fingerprint_store_optional(self):
        service = RagIngestionService(ListReader([]), None, KeywordEmbeddingModel(), RecordingVectorStore())
        self.assertEqual(service.transformers, [])
        self.assertIsInstance(service.fingerprint_store, InMemoryFingerprintStore)


class TestIngestAll(unittest.TestCase):
    def setUp(self):
        self.model = KeywordEmbeddingModel()
        self.store = RecordingVectorStore()

    def test_writes_every_chunk_with_one_embed_and_one_add(self):
        reader = ListReader([tagged("java spring", index=0), tagged("python rag", index=1)])
        service = RagIngestionService(reader, [], self.model, self.store)

        self.assertEqual(service.ingest_all(), 2)
        self.assertEqual(len(self.model.calls), 1)
        self.assertEqual(len(self.store.add_calls), 1)
        self.assertEqual(service.fingerprint_count(), 2)

    def test_vectors_are_paired_positionally(self):
        reader = ListReader([tagged("cat", index=0), tagged("dog dog", index=1)])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_all()

        documents, vectors = self.store.add_calls[0]
        for doc, vector in zip(documents, vectors):
            self.assertEqual(vector, KeywordEmbeddingModel.vector(doc.text))

    def test_empty_pipeline_returns_zero_without_embedding(self):
        service = RagIngestionService(ListReader([]), [], self.model, self.store)
        self.assertEqual(service.ingest_all(), 0)
        self.assertEqual(self.model.calls, [])
        self.assertEqual(self.store.add_calls, [])

    def test_full_runs_are_unconditional(self):
        reader = ListReader([tagged("java")])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_all()
        self.assertEqual(service.ingest_all(), 1)
        self.assertEqual(len(self.store.add_calls), 2)

    def test_transformers_run_in_declared_order(self):
        reader = ListReader([tagged("java")])
        service = RagIngestionService(reader, [TagTransformer("first"), TagTransformer("second")],
                                      self.model, self.store)
        service.ingest_all()

        written = self.store.add_calls[0][0][0]
        self.assertEqual(written.metadata["trail"], ["first", "second"])

    def test_count_mismatch_raises_before_store_write(self):
        reader = ListReader([tagged("java", index=0), tagged("python", index=1)])
        service = RagIngestionService(reader, [], ShortEmbeddingModel(), self.store)

        with self.assertRaises(EmbeddingCountMismatchError) as ctx:
            service.ingest_all()
        self.assertEqual(ctx.exception.expected, 2)
        self.assertEqual(ctx.exception.actual, 1)
        self.assertEqual(self.store.add_calls, [])
        self.assertEqual(service.fingerprint_count(), 0)

    def test_failed_store_write_leaves_fingerprints_unchanged(self):
        reader = ListReader([tagged("java")])
        fingerprints = InMemoryFingerprintStore()
        fingerprints.put_all({"docs/a.md::0": "previous"})
        store = RecordingVectorStore(fail=True)
        service = RagIngestionService(reader, [], self.model, store, fingerprints)

        with self.assertLogs("ragetl.ingestion", level="ERROR") as logs:
            with self.assertRaises(OSError):
                service.ingest_all()
        self.assertTrue(any("ingest_all" in line for line in logs.output))
        self.assertEqual(fingerprints.snapshot(), {"docs/a.md::0": "previous"})


class TestIngestIncremental(unittest.TestCase):
    def setUp(self):
        self.model = KeywordEmbeddingModel()
        self.store = RecordingVectorStore()

    def test_second_run_without_changes_embeds_nothing(self):
        reader = ListReader([tagged("java", index=0), tagged("python", index=1)])
        service = RagIngestionService(reader, [], self.model, self.store)

        self.assertEqual(service.ingest_incremental(), 2)
        self.assertEqual(service.ingest_incremental(), 0)
        self.assertEqual(len(self.model.calls), 1)
        self.assertEqual(len(self.store.add_calls), 1)

    def test_only_changed_chunks_are_written(self):
        reader = ListReader([tagged("java", index=0), tagged("python", index=1)])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_incremental()

        reader.items[1] = tagged("python rag", index=1)
        self.assertEqual(service.ingest_incremental(), 1)

        written, _ = self.store.add_calls[-1]
        self.assertEqual([doc.text for doc in written], ["python rag"])
        self.assertEqual(self.model.calls[-1], ["python rag"])

    def test_metadata_only_change_is_detected(self):
        reader = ListReader([tagged("java", version=1)])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_incremental()

        reader.items[0] = tagged("java", version=2)
        self.assertEqual(service.ingest_incremental(), 1)

    def test_full_run_primes_incremental(self):
        reader = ListReader([tagged("java", index=0), tagged("python", index=1)])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_all()
        self.assertEqual(service.ingest_incremental(), 0)

    def test_failed_run_leaves_fingerprints_unchanged_and_retry_succeeds(self):
        reader = ListReader([tagged("java")])
        store = RecordingVectorStore(fail=True)
        service = RagIngestionService(reader, [], self.model, store)

        with self.assertRaises(OSError):
            service.ingest_incremental()
        self.assertEqual(service.fingerprint_count(), 0)

        store.fail = False
        self.assertEqual(service.ingest_incremental(), 1)
        self.assertEqual(service.fingerprint_count(), 1)

    def test_untagged_chunks_with_stable_ids_converge(self):
        reader = StableIdReader([("java", {}), ("python", {})])
        service = RagIngestionService(reader, [], self.model, self.store)

        self.assertEqual(service.ingest_incremental(), 2)
        self.assertEqual(service.fingerprint_count(), 2)
        self.assertEqual(service.ingest_incremental(), 0)
        self.assertEqual(service.fingerprint_count(), 2)

    def test_untagged_chunks_with_random_ids_warn_every_run(self):
        reader = ListReader([("java", {}), ("python", {})])
        service = RagIngestionService(reader, [], self.model, self.store)

        for _ in range(2):
            with self.assertLogs("ragetl.ingestion", level="WARNING") as logs:
                self.assertEqual(service.ingest_incremental(), 2)
            self.assertTrue(any("2 chunks lack source/chunk_index" in line for line in logs.output))
        self.assertEqual(service.fingerprint_count(), 4)

    def test_tagged_chunks_do_not_warn(self):
        service = RagIngestionService(ListReader([tagged("java")]), [], self.model, self.store)
        with mock.patch.object(service.logger, "warning") as warning:
            service.ingest_all()
            service.ingest_incremental()
        warning.assert_not_called()

    def test_duplicate_keys_in_one_run_are_all_written(self):
        reader = ListReader([tagged("java", index=0), tagged("python", index=0)])
        fingerprints = InMemoryFingerprintStore()
        service = RagIngestionService(reader, [], self.model, self.store, fingerprints)

        self.assertEqual(service.ingest_incremental(), 2)
        last = RagDocument(text="python", metadata={"source": "docs/a.md", "chunk_index": 0})
        self.assertEqual(fingerprints.get("docs/a.md::0"), compute_fingerprint(last))

    def test_reset_fingerprints_forces_reingestion(self):
        reader = ListReader([tagged("java")])
        service = RagIngestionService(reader, [], self.model, self.store)
        service.ingest_incremental()
        service.reset_fingerprints()
        self.assertEqual(service.fingerprint_count(), 0)
        self.assertEqual(service.ingest_incremental(), 1)

    def test_fingerprint_failure_is_fatal(self):
        reader = ListReader([tagged("java")])
        service = RagIngestionService(reader, [], self.model, self.store)

        with mock.patch("ragetl.ingestion.compute_fingerprint",
                                 side_effect=FingerprintError("boom")):
            with self.assertRaises(FingerprintError):
                service.ingest_incremental()
        self.assertEqual(self.store.add_calls, [])


class TestIngestionConcurrency(unittest.TestCase):
    def test_runs_are_serialised(self):
        reader = BlockingReader([tagged("java")])
        service = RagIngestionService(reader, [], KeywordEmbeddingModel(), RecordingVectorStore())

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(service.ingest_all())),
            threading.Thread(target=lambda: results.append(service.ingest_incremental())),
        ]
        for thread in threads:
            thread.start()

        self.assertTrue(reader.entered.wait(timeout=5))
        # Give the second thread time to reach the lock
        time.sleep(0.1)
        reader.release.set()
        for thread in threads:
            thread.join(timeout=5)

        self.assertEqual(reader.max_active, 1)
        self.assertEqual(reader.read_count, 2)
        self.assertEqual(len(results), 2)


class TestChunkKeys(unittest.TestCase):
    def test_source_and_index(self):
        doc = RagDocument(text="x", metadata={"source": "a.md", "chunk_index": 3})
        self.assertEqual(chunk_key(doc), "a.md::3")

    def test_falls_back_to_id(self):
        doc = RagDocument(text="x", metadata={"source": "a.md"}, id="doc-1")
        self.assertEqual(chunk_key(doc), "id::doc-1")


if __name__ == '__main__':
    unittest.main()
