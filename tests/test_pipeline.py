import pytest
from unittest import mock

from cdi_pipeline.cache import DATA, METADATA, PayloadCache
from cdi_pipeline.errors import ImporterError
from cdi_pipeline.loaders import FetchResult
from cdi_pipeline.pipeline import MAX_SESSION_RENEWALS, Outcome, RetrievalPipeline

from conftest import ScriptedLoader, StubSource


RAW_DATA = "/* preamble */\nDate/Time\tValue\n2020-01-01T00:00\t1\n"
STORED_DATA = "Date/Time;Value\n2020-01-01T00:00;1\n"
METADATA_TEXT = "<MetaData/>"


@pytest.fixture
def cache(tmp_path):
    return PayloadCache(cache_dir=str(tmp_path / "cache"))


@pytest.fixture
def source():
    return StubSource()


@pytest.fixture
def sleep():
    return mock.MagicMock()


@pytest.fixture
def progress():
    return mock.MagicMock()


def make_pipeline(source, cache, data_loader, metadata_loader, sleep, progress=None, **kwargs):
    return RetrievalPipeline(
        source, cache, data_loader=data_loader, metadata_loader=metadata_loader,
        sleep=sleep, progress=progress, **kwargs
    )


class TestRetrievalPipelineSuccess:
    def test_retrieve_fetches_reformats_and_caches(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep)

        result = pipeline.retrieve("849221")

        assert result.outcome == Outcome.SUCCESS
        assert result
        assert result.data == STORED_DATA
        assert result.metadata == METADATA_TEXT
        assert cache.load("849221", DATA) == STORED_DATA
        assert cache.load("849221", METADATA) == METADATA_TEXT
        assert source.preprocessed == [("849221", STORED_DATA, METADATA_TEXT)]
        sleep.assert_not_called()

    def test_cache_hit_skips_loaders(self, source, cache, sleep):
        cache.save("849221", DATA, STORED_DATA)
        cache.save("849221", METADATA, METADATA_TEXT)
        data_loader = ScriptedLoader(FetchResult.failed("should not be called"))
        metadata_loader = ScriptedLoader(FetchResult.failed("should not be called"))

        result = make_pipeline(source, cache, data_loader, metadata_loader, sleep).retrieve("849221")

        assert result.success
        assert data_loader.calls == 0
        assert metadata_loader.calls == 0
        assert source.preprocessed == [("849221", STORED_DATA, METADATA_TEXT)]

    def test_second_retrieve_uses_cache(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep)

        pipeline.retrieve("849221")
        pipeline.retrieve("849221")

        assert data_loader.calls == 1
        assert metadata_loader.calls == 1

    def test_retry_then_success(self, source, cache, sleep, progress):
        data_loader = ScriptedLoader(FetchResult.failed("timeout"), FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep, progress,
                                 retries=3, retry_wait=2)

        result = pipeline.retrieve("849221")

        assert result.success
        assert data_loader.calls == 2
        assert sleep.call_args_list == [mock.call(1), mock.call(1)]


class TestRetrievalPipelineFailures:
    def test_retries_exhausted(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.failed("connection refused"))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep,
                                 retries=3, retry_wait=0)

        result = pipeline.retrieve("849221")

        assert result.outcome == Outcome.FAILED
        assert not result
        assert "after 3 attempts" in result.reason
        assert data_loader.calls == 3
        assert metadata_loader.calls == 0
        assert not cache.is_cached("849221", DATA)
        assert source.preprocessed == []
        sleep.assert_not_called()

    def test_countdown_between_attempts_only(self, source, cache, sleep, progress):
        data_loader = ScriptedLoader(FetchResult.failed("timeout"))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep, progress,
                                 retries=2, retry_wait=3)

        pipeline.retrieve("849221")

        assert [c.args[0] for c in progress.call_args_list] == [
            "Data retrieval failed. Retrying in 3 seconds (1 attempts remaining)",
            "Data retrieval failed. Retrying in 2 seconds (1 attempts remaining)",
            "Data retrieval failed. Retrying in 1 seconds (1 attempts remaining)",
        ]
        assert sleep.call_count == 3

    def test_not_found_is_not_retried(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.not_found("404"))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))

        result = make_pipeline(source, cache, data_loader, metadata_loader, sleep).retrieve("1")

        assert result.outcome == Outcome.NOT_FOUND
        assert data_loader.calls == 1
        sleep.assert_not_called()

    def test_metadata_not_found_keeps_cached_data(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.not_found())

        result = make_pipeline(source, cache, data_loader, metadata_loader, sleep).retrieve("1")

        assert result.outcome == Outcome.NOT_FOUND
        assert cache.is_cached("1", DATA)
        assert not cache.is_cached("1", METADATA)

    def test_unexpected_exception_counts_as_failure(self, source, cache, sleep):
        data_loader = ScriptedLoader(RuntimeError("boom"), FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep, retry_wait=0)

        result = pipeline.retrieve("1")

        assert result.success
        assert data_loader.calls == 2

    def test_reformat_error(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok("no header in here\n"))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))

        result = make_pipeline(source, cache, data_loader, metadata_loader, sleep).retrieve("1")

        assert result.outcome == Outcome.FAILED
        assert "Cannot find column header" in result.reason
        assert not cache.is_cached("1", DATA)

    def test_preprocess_error(self, cache, sleep):
        source = StubSource()
        source.preprocess = mock.MagicMock(side_effect=ImporterError("Metadata root is not MetaData"))
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.ok(METADATA_TEXT))

        result = make_pipeline(source, cache, data_loader, metadata_loader, sleep).retrieve("1")

        assert result.outcome == Outcome.FAILED
        assert result.reason == "Metadata root is not MetaData"

    @pytest.mark.parametrize("retries, retry_wait", [(0, 30), (-1, 30), (3, -1)])
    def test_invalid_settings(self, source, cache, retries, retry_wait):
        with pytest.raises(ValueError):
            RetrievalPipeline(source, cache, data_loader=ScriptedLoader(), metadata_loader=ScriptedLoader(),
                              retries=retries, retry_wait=retry_wait)

    def test_loaders_default_to_source(self, cache):
        source = mock.MagicMock()
        pipeline = RetrievalPipeline(source, cache)
        assert pipeline.data_loader is source.data_loader.return_value
        assert pipeline.metadata_loader is source.metadata_loader.return_value


class TestSessionRenewal:
    def test_expired_session_renewed_without_using_attempt(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(
            FetchResult.session_expired(), FetchResult.ok(METADATA_TEXT),
        )
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep, retries=1)

        result = pipeline.retrieve("849221")

        assert result.success
        assert metadata_loader.calls == 2
        assert metadata_loader.renewals == 1
        sleep.assert_not_called()

    def test_renewals_capped_per_attempt(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.session_expired())
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep,
                                 retries=2, retry_wait=0)

        result = pipeline.retrieve("849221")

        assert result.outcome == Outcome.FAILED
        assert metadata_loader.calls == 2 * (MAX_SESSION_RENEWALS + 1)
        assert metadata_loader.renewals == 2 * MAX_SESSION_RENEWALS

    def test_renewal_failure_counts_as_failed_attempt(self, source, cache, sleep):
        data_loader = ScriptedLoader(FetchResult.ok(RAW_DATA))
        metadata_loader = ScriptedLoader(FetchResult.session_expired(), FetchResult.ok(METADATA_TEXT))
        metadata_loader.renew_session = mock.MagicMock(
            side_effect=[ImporterError("Unable to get a session ID"), None]
        )
        pipeline = make_pipeline(source, cache, data_loader, metadata_loader, sleep,
                                 retries=2, retry_wait=0)

        result = pipeline.retrieve("849221")

        assert result.success
        assert metadata_loader.calls == 2
        assert metadata_loader.renew_session.call_count == 1
