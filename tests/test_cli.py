import unittest
from pathlib import Path
from unittest import mock

from click.testing import CliRunner

import main
from fakes import KeywordEmbeddingModel

GUIDE = """# Java

Java is a language. Spring is a Java framework.

# Python

Python powers many RAG and vector database tools.
"""


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        patcher = mock.patch("main.create_embedding_model", side_effect=lambda options: KeywordEmbeddingModel())
        self.create_model = patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args, **kwargs):
        base = ["--config", "config/ragetl.yaml", "--db-path", "data/vectors.db"]
        return self.runner.invoke(main.cli, base + list(args), **kwargs)

    def write_guide(self, text=GUIDE):
        Path("guide.md").write_text(text, encoding="utf-8")

    def test_full_then_incremental_ingest(self):
        with self.runner.isolated_filesystem():
            self.write_guide()

            result = self.invoke("ingest", "full", "guide.md")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("Ingested 2 chunks", result.output)

            result = self.invoke("ingest", "incremental", "guide.md")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("No changes detected", result.output)

            self.write_guide(GUIDE.replace("many RAG", "several RAG"))
            result = self.invoke("ingest", "incremental", "guide.md")
            self.assertIn("Ingested 1 chunks", result.output)

    def test_ingest_requires_existing_path(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("ingest", "full", "missing.md")
            self.assertNotEqual(result.exit_code, 0)

    def test_search_with_filters_and_citations(self):
        with self.runner.isolated_filesystem():
            self.write_guide()
            self.invoke("ingest", "full", "guide.md")

            result = self.invoke("search", "java", "--threshold", "0", "--citations")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("guide.md", result.output)

            result = self.invoke("search", "java", "--threshold", "0", "--filter", "title=Nothing")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("No matching documents", result.output)

    def test_search_rejects_malformed_filter(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("search", "java", "--filter", "no-separator")
            self.assertEqual(result.exit_code, 2)

    def test_search_failure_exits_with_error(self):
        self.create_model.side_effect = RuntimeError("model unavailable")
        with self.runner.isolated_filesystem():
            result = self.invoke("search", "java")
            self.assertEqual(result.exit_code, 1)
            self.assertIn("Search failed", result.output)

    def test_delete_and_stats(self):
        with self.runner.isolated_filesystem():
            self.write_guide()
            self.invoke("ingest", "full", "guide.md")

            result = self.invoke("delete", "title", "Java", "--confirm")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("Deleted 1 documents", result.output)

            result = self.invoke("stats")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("Documents", result.output)
            self.assertIn("Fingerprints", result.output)

    def test_delete_can_be_cancelled(self):
        with self.runner.isolated_filesystem():
            result = self.invoke("delete", "title", "Java", input="n\n")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertIn("Deletion cancelled", result.output)

    def test_search_rejects_zero_top_k(self):
        with self.runner.isolated_filesystem():
            self.write_guide()
            self.invoke("ingest", "full", "guide.md")

            result = self.invoke("search", "java", "--top-k", "0")
            self.assertEqual(result.exit_code, 1)
            self.assertIn("top_k must be a positive integer", result.output)

    def test_memory_backend_is_rejected(self):
        with self.runner.isolated_filesystem():
            self.write_guide()
            Path("memory.yaml").write_text("vector_store_backend: memory\n", encoding="utf-8")

            for args in (["ingest", "full", "guide.md"], ["search", "java"], ["stats"]):
                result = self.runner.invoke(main.cli, ["--config", "memory.yaml"] + args)
                self.assertEqual(result.exit_code, 1, result.output)
                self.assertIn("needs the sqlite backend", result.output)

    def test_invalid_configuration_exits_with_error(self):
        with self.runner.isolated_filesystem():
            Path("bad.yaml").write_text("not_an_option: 1\n", encoding="utf-8")
            result = self.runner.invoke(main.cli, ["--config", "bad.yaml", "stats"])
            self.assertEqual(result.exit_code, 1)
            self.assertIn("Failed to load configuration", result.output)


class TestFilterParsing(unittest.TestCase):
    def test_values_are_typed(self):
        self.assertEqual(
            main.parse_filters(("chunk_index=3", "draft=true", "lang=en", "tag=null")),
            {"chunk_index": 3, "draft": True, "lang": "en", "tag": None}
        )

    def test_value_may_contain_equals(self):
        self.assertEqual(main.parse_filters(("expr=a=b",)), {"expr": "a=b"})


if __name__ == '__main__':
    unittest.main()
