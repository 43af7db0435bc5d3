"""Tests for autocomplete suggestions."""

from kungfu import Ok

from cartflow.catalog import CatalogQuery, SuggestionBook


class TestSuggestionBook:
    def test_recent_terms_rank_first(self):
        book = SuggestionBook()
        book.record("linen shirt")
        book.record("linen apron")
        assert book.suggest("lin", 5) == ("linen apron", "linen shirt")

        book.record("linen shirt")
        assert book.suggest("lin", 5) == ("linen shirt", "linen apron")

    def test_prefix_is_case_insensitive(self):
        book = SuggestionBook()
        book.record("Linen Shirt")
        assert book.suggest("LINEN s", 5) == ("Linen Shirt",)

    def test_limit_caps_results(self):
        book = SuggestionBook()
        for term in ("tea", "teal", "team", "tease"):
            book.record(term)
        assert len(book.suggest("te", 2)) == 2
        assert book.suggest("te", 0) == ()

    def test_oldest_term_evicted_when_full(self):
        book = SuggestionBook(max_terms=2)
        book.record("alpha")
        book.record("beta")
        book.record("gamma")
        assert book.suggest("alpha", 5) == ()
        assert book.suggest("gamma", 5) == ("gamma",)

    def test_names_removed_with_last_owner(self):
        book = SuggestionBook()
        book.add_name("a", "Linen Tee")
        book.add_name("b", "Linen Tee")
        book.remove_name("a", "Linen Tee")
        assert book.suggest("linen", 5) == ("Linen Tee",)
        book.remove_name("b", "Linen Tee")
        assert book.suggest("linen", 5) == ()


class TestCatalogSuggest:
    def test_product_names_suggested(self, catalog):
        assert set(catalog.suggest("linen")) == {"Linen Tee", "Linen Apron"}

    def test_searched_terms_outrank_older_names(self, catalog):
        match catalog.query(CatalogQuery(search_text="linen summer")):
            case Ok(_):
                pass
        assert catalog.suggest("lin", 3)[0] == "linen summer"

    def test_inactive_names_not_suggested(self, catalog):
        assert catalog.suggest("vintage") == ()
        catalog.activate("poster")
        assert catalog.suggest("vintage") == ("Vintage Poster",)
        catalog.deactivate("poster")
        assert catalog.suggest("vintage") == ()
