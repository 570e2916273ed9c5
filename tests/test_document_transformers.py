import unittest

from ragetl.document import RagDocument
from ragetl.document_transformers import SummaryMetadataEnricher, TokenTextSplitter


class TestTokenTextSplitter(unittest.TestCase):
    def setUp(self):
        self.text = (
            "Java is an object oriented language. It has a rich ecosystem. "
            "Spring is an important framework in the Java ecosystem. "
            "RAG helps models reach external knowledge! Does it scale? "
            "Vector databases make retrieval fast.\n"
        ) * 4

    def test_small_text_is_one_chunk(self):
        splitter = TokenTextSplitter()
        self.assertEqual(splitter.split_text("A short paragraph."), ["A short paragraph."])

    def test_blank_text_yields_nothing(self):
        splitter = TokenTextSplitter()
        self.assertEqual(splitter.split_text("   \n "), [])
        self.assertEqual(splitter.transform([RagDocument(text="")]), [])
        self.assertEqual(splitter.transform([]), [])

    def test_chunks_respect_token_budget(self):
        splitter = TokenTextSplitter(chunk_size=20, min_chunk_size_chars=10, min_chunk_length_to_embed=2)
        chunks = splitter.split_text(self.text)

        self.assertGreater(len(chunks), 1)
        for chunk in chunks:
            self.assertLessEqual(len(splitter.encoding.encode(chunk)), 20)

    def test_chunks_end_at_punctuation_when_possible(self):
        splitter = TokenTextSplitter(chunk_size=20, min_chunk_size_chars=10, min_chunk_length_to_embed=2)
        chunks = splitter.split_text(self.text)
        for chunk in chunks[:-1]:
            self.assertIn(chunk[-1], ".?!")

    def test_cjk_chunks_end_at_sentence_enders(self):
        splitter = TokenTextSplitter(chunk_size=20, min_chunk_size_chars=3, min_chunk_length_to_embed=2)
        chunks = splitter.split_text("检索很快。" * 12)

        self.assertGreater(len(chunks), 1)
        for chunk in chunks[:-1]:
            self.assertEqual(chunk[-1], "。")
        self.assertFalse(any("�" in chunk for chunk in chunks))

    def test_short_fragments_are_dropped(self):
        splitter = TokenTextSplitter(min_chunk_length_to_embed=10)
        self.assertEqual(splitter.split_text("tiny"), [])

    def test_max_num_chunks_caps_output(self):
        splitter = TokenTextSplitter(chunk_size=10, min_chunk_size_chars=5, max_num_chunks=2)
        chunks = splitter.split_text(self.text)
        # Two windows plus the flattened remainder
        self.assertEqual(len(chunks), 3)
        self.assertNotIn("\n", chunks[-1])

    def test_non_positive_settings_fall_back_to_defaults(self):
        splitter = TokenTextSplitter(chunk_size=0, min_chunk_size_chars=-1, min_chunk_length_to_embed=0, max_num_chunks=0)
        self.assertEqual(splitter.chunk_size, 800)
        self.assertEqual(splitter.min_chunk_size_chars, 350)
        self.assertEqual(splitter.min_chunk_length_to_embed, 5)
        self.assertEqual(splitter.max_num_chunks, 10000)

    def test_transform_keeps_parent_metadata(self):
        parent = RagDocument(text=self.text, metadata={"source": "docs/demo.md", "chunk_index": 3}, id="doc-1")
        splitter = TokenTextSplitter(chunk_size=20, min_chunk_size_chars=10, min_chunk_length_to_embed=2)
        chunks = splitter.transform([parent])

        self.assertGreater(len(chunks), 1)
        for position, chunk in enumerate(chunks):
            self.assertEqual(chunk.metadata["source"], "docs/demo.md")
            self.assertEqual(chunk.metadata["parent_document_id"], "doc-1")
            self.assertEqual(chunk.metadata["section_index"], 3)
            self.assertEqual(chunk.metadata["chunk_index"], position)
            self.assertNotEqual(chunk.id, "doc-1")
        self.assertEqual(parent.metadata["chunk_index"], 3)

    def test_chunk_index_counts_per_source(self):
        docs = [
            RagDocument(text="First section text.", metadata={"source": "a.md", "chunk_index": 0}),
            RagDocument(text="Second section text.", metadata={"source": "a.md", "chunk_index": 1}),
            RagDocument(text="Other file text.", metadata={"source": "b.md", "chunk_index": 0}),
        ]
        chunks = TokenTextSplitter().transform(docs)
        keys = [(c.metadata["source"], c.metadata["chunk_index"]) for c in chunks]
        self.assertEqual(keys, [("a.md", 0), ("a.md", 1), ("b.md", 0)])

    def test_chunk_ids_are_stable_across_runs(self):
        def run():
            doc = RagDocument(text=self.text, metadata={"source": "a.md"})
            splitter = TokenTextSplitter(chunk_size=20, min_chunk_size_chars=10)
            return [c.id for c in splitter.transform([doc])]

        self.assertEqual(run(), run())


class TestSummaryMetadataEnricher(unittest.TestCase):
    def setUp(self):
        self.docs = [RagDocument(text="Spring is a Java framework.", metadata={"source": "a.md"}, id="d1")]

    def test_disabled_is_identity(self):
        enricher = SummaryMetadataEnricher(lambda text: "summary", enabled=False)
        self.assertEqual(enricher.transform(self.docs), self.docs)

    def test_missing_summarizer_is_identity(self):
        self.assertEqual(SummaryMetadataEnricher(None, enabled=True).transform(self.docs), self.docs)

    def test_adds_section_summary(self):
        enricher = SummaryMetadataEnricher(lambda text: "  About Spring.  ", enabled=True)
        enriched = enricher.transform(self.docs)

        self.assertEqual(enriched[0].metadata["section_summary"], "About Spring.")
        self.assertEqual(enriched[0].metadata["source"], "a.md")
        self.assertEqual(enriched[0].id, "d1")
        self.assertNotIn("section_summary", self.docs[0].metadata)

    def test_blank_summary_keeps_document(self):
        enricher = SummaryMetadataEnricher(lambda text: "   ", enabled=True)
        self.assertNotIn("section_summary", enricher.transform(self.docs)[0].metadata)

    def test_failure_keeps_original_and_warns(self):
        def broken(text):
            raise RuntimeError("chat model unavailable")

        enricher = SummaryMetadataEnricher(broken, enabled=True)
        with self.assertLogs("ragetl.document_transformers", level="WARNING"):
            result = enricher.transform(self.docs)
        self.assertIs(result[0], self.docs[0])


if __name__ == '__main__':
    unittest.main()
