"""
Tests for TMDB poster selection
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from services.tmdb_service import IMAGE_BASE, PosterResult, TmdbService, select_poster


def _http_error(status=404):
    response = requests.Response()
    response.status_code = status
    return requests.exceptions.HTTPError(f"{status} Client Error", response=response)


@pytest.fixture
def tmdb_service():
    """Create TMDB service for testing"""
    return TmdbService(api_key="test_api_key_12345678")


@pytest.fixture
def mock_images_response():
    """Mock /movie/{id}/images response"""
    return {
        "posters": [
            {"file_path": "/fr.jpg", "iso_639_1": "fr", "width": 2000, "height": 3000, "vote_average": 9.0},
            {"file_path": "/xx-small.jpg", "iso_639_1": "xx", "width": 1000, "height": 1500, "vote_average": 8.0},
            {"file_path": "/xx-big-low.jpg", "iso_639_1": "xx", "width": 2000, "height": 3000, "vote_average": 4.0},
            {"file_path": "/null-big-high.jpg", "iso_639_1": None, "width": 2000, "height": 3000, "vote_average": 6.0},
        ]
    }


class TestSelectPoster:
    """Textless first (resolution, then votes), French fallback, else nothing"""

    def test_textless_wins(self, mock_images_response):
        result = select_poster(mock_images_response["posters"])
        assert result == PosterResult(f"{IMAGE_BASE}/original/null-big-high.jpg", "textless")

    def test_missing_language_counts_as_textless(self):
        result = select_poster([{"file_path": "/a.jpg", "width": 10, "height": 15}])
        assert result.type == "textless"

    def test_literal_null_language(self):
        result = select_poster([{"file_path": "/a.jpg", "iso_639_1": "null", "width": 10, "height": 15}])
        assert result.type == "textless"

    def test_french_fallback_by_resolution(self):
        posters = [
            {"file_path": "/en.jpg", "iso_639_1": "en", "width": 4000, "height": 6000},
            {"file_path": "/fr-small.jpg", "iso_639_1": "fr", "width": 500, "height": 750},
            {"file_path": "/fr-big.jpg", "iso_639_1": "fr", "width": 1000, "height": 1500},
        ]
        assert select_poster(posters) == PosterResult(f"{IMAGE_BASE}/original/fr-big.jpg", "fr")

    def test_nothing_suitable(self):
        assert select_poster([{"file_path": "/en.jpg", "iso_639_1": "en", "width": 10, "height": 10}]) is None
        assert select_poster([]) is None


class TestTmdbService:
    async def test_movie_textless(self, tmdb_service, mock_images_response):
        with patch("tmdbsimple.Movies") as movies:
            movies.return_value.images.return_value = mock_images_response
            result = await tmdb_service.get_movie_textless_poster("438631")

        movies.assert_called_once_with("438631")
        assert result.url.endswith("/null-big-high.jpg")

    async def test_movie_standard(self, tmdb_service):
        with patch("tmdbsimple.Movies") as movies:
            movies.return_value.info.return_value = {"poster_path": "/std.jpg"}
            result = await tmdb_service.get_movie_standard_poster("438631")

        assert result == PosterResult(f"{IMAGE_BASE}/original/std.jpg", "standard")

    async def test_http_error_is_a_soft_miss(self, tmdb_service):
        with patch("tmdbsimple.Movies") as movies:
            movies.return_value.images.side_effect = _http_error(404)
            assert await tmdb_service.get_movie_textless_poster("1") is None

    async def test_connection_error_propagates(self, tmdb_service):
        with patch("tmdbsimple.Movies") as movies:
            movies.return_value.images.side_effect = requests.exceptions.ConnectionError("down")
            with pytest.raises(requests.exceptions.ConnectionError):
                await tmdb_service.get_movie_textless_poster("1")

    async def test_show_status(self, tmdb_service):
        with patch("tmdbsimple.TV") as tv:
            tv.return_value.info.return_value = {"status": "Returning Series"}
            assert await tmdb_service.get_show_status("95396") == "Returning Series"

    async def test_show_status_missing(self, tmdb_service):
        with patch("tmdbsimple.TV") as tv:
            tv.return_value.info.return_value = {"status": ""}
            assert await tmdb_service.get_show_status("95396") is None

    async def test_season_prefers_textless_images(self, tmdb_service):
        with patch("tmdbsimple.TV_Seasons") as seasons:
            seasons.return_value.images.return_value = {
                "posters": [{"file_path": "/s2.jpg", "iso_639_1": "xx", "width": 10, "height": 15}]
            }
            result = await tmdb_service.get_season_poster("95396", 2)

        seasons.assert_called_with("95396", 2)
        assert result.type == "textless"

    async def test_season_falls_back_to_info_poster(self, tmdb_service):
        season = MagicMock()
        season.images.return_value = {"posters": []}
        season.info.return_value = {"poster_path": "/season2.jpg"}
        with patch("tmdbsimple.TV_Seasons", return_value=season):
            result = await tmdb_service.get_season_poster("95396", 2)

        assert result == PosterResult(f"{IMAGE_BASE}/original/season2.jpg", "standard")

    def test_empty_key_is_rejected(self):
        with pytest.raises(ValueError):
            TmdbService(api_key="")
