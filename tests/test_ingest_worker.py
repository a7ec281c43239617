import io
import unittest
from contextlib import redirect_stdout
from unittest import mock

import ingest_worker
from pulsewire.ingestion.sources import default_sources


class TestIngestWorker(unittest.TestCase):
    def test_select_sources_by_name(self):
        chosen = ingest_worker.select_sources(default_sources(), ["YouTube", "bbc"])
        self.assertEqual(sorted(s.name for s in chosen), ["bbc", "youtube"])

    def test_unknown_source_fails_fast(self):
        with self.assertRaises(ValueError):
            ingest_worker.select_sources(default_sources(), ["nope"])

    def test_unknown_source_rejected_before_database_is_touched(self):
        config = mock.Mock(max_items_per_source=5, request_timeout=10.0, pg_dsn="postgresql://db/test")
        with mock.patch.object(ingest_worker, "ensure_postgres_schema") as ensure, \
                mock.patch.object(ingest_worker, "PostgresRepo") as repo:
            with self.assertRaises(ValueError):
                ingest_worker.run_once(config, ["nope"])
        ensure.assert_not_called()
        repo.assert_not_called()

    def test_no_selection_means_all(self):
        self.assertEqual(len(ingest_worker.select_sources(default_sources(), None)), len(default_sources()))

    def test_list_sources(self):
        out = io.StringIO()
        with redirect_stdout(out):
            self.assertEqual(ingest_worker.main(["--list-sources"]), 0)
        self.assertIn("youtube\tvideo", out.getvalue())

    def test_signal_shuts_down_active_run(self):
        runner = mock.Mock()
        with mock.patch.object(ingest_worker, "_active_runner", runner):
            ingest_worker._handle_signal(15, None)
        runner.shutdown.assert_called_once()
        self.assertTrue(ingest_worker._stop.is_set())
        ingest_worker._stop.clear()


if __name__ == "__main__":
    unittest.main()
