from biowell.core.supplements import (
    DEFAULT_IMAGE,
    FEATURED_SUPPLEMENTS,
    SUPPLEMENTS,
    featured_supplements,
    get_supplement,
    list_supplements,
    recommend_supplements,
    stack_cost,
    supplement_image,
    supplement_slug,
    unit_price,
)


def test_slug_rules() -> None:
    assert supplement_slug("Magnesium Glycinate") == "magnesium-glycinate"
    assert supplement_slug("Omega-3 (EPA/DHA)") == "omega-3-epa-dha"
    assert supplement_slug("Iron (Ferrous Bisglycinate)") == "iron-ferrous-bisglycinate"
    assert supplement_slug("Vitamin K2 (MK-7)") == "vitamin-k2-mk-7"


def test_catalog_has_unique_ids_and_featured_entries_resolve() -> None:
    ids = [item["id"] for item in SUPPLEMENTS]
    assert len(ids) == 19
    assert len(set(ids)) == 19
    assert [item["id"] for item in featured_supplements()] == FEATURED_SUPPLEMENTS


def test_image_lookup_exact_then_default() -> None:
    assert supplement_image("Magnesium Glycinate") == "/supplements/magnesium-glycinate.svg"
    assert supplement_image("Rhodiola Rosea") == DEFAULT_IMAGE
    assert supplement_image("L-Citrulline") == DEFAULT_IMAGE


def test_orange_tier_carries_warning_and_fallback_description() -> None:
    tongkat = get_supplement("tongkat-ali")
    assert tongkat is not None
    assert tongkat["warnings"] == ["Consult healthcare provider before use"]
    bacopa = get_supplement("bacopa-monnieri")
    assert bacopa["warnings"] == []
    assert bacopa["description"] == "Memory & learning. Strong evidence for effectiveness."


def test_search_matches_name_category_and_use_case() -> None:
    assert {s["id"] for s in list_supplements(query="SLEEP")} == {"magnesium-glycinate", "melatonin"}
    orange = list_supplements(tier="orange")
    assert {s["id"] for s in orange} == {"tongkat-ali", "melatonin", "iron-ferrous-bisglycinate"}
    assert len(list_supplements(category="Endurance")) == 2


def test_unit_price_member_discount_is_capped_on_one_off_lines() -> None:
    magnesium = get_supplement("magnesium-glycinate")
    assert unit_price(magnesium, subscription=False) == 162.0
    assert unit_price(magnesium, subscription=True) == 127.98
    assert unit_price(magnesium, subscription=False, member_discount=0.15) == 137.7
    assert unit_price(magnesium, subscription=False, member_discount=None) == 127.98
    assert unit_price(magnesium, subscription=True, member_discount=0.15) == 127.98


def test_member_price_never_exceeds_non_member_price() -> None:
    for supplement in list_supplements():
        for subscription in (False, True):
            base = unit_price(supplement, subscription)
            for cap in (0.15, 0.20, None):
                assert unit_price(supplement, subscription, member_discount=cap) <= base


def test_stack_cost_ignores_unknown_ids() -> None:
    assert stack_cost(["vitamin-d3", "omega-3-epa-dha", "nope"]) == 251.0
    assert stack_cost(["vitamin-d3", "omega-3-epa-dha"], subscription=True) == 203.53


def test_recommendations_rank_green_strong_first() -> None:
    result = recommend_supplements(["Sleep"])
    assert result["matched_categories"] == ["Sleep & Recovery"]
    assert [s["id"] for s in result["supplements"]] == ["magnesium-glycinate", "melatonin"]
    assert any(stack["id"] == "sleep-stack" for stack in result["stacks"])


def test_recommendations_without_goals_fall_back_to_featured() -> None:
    result = recommend_supplements([], exclude_ids={"vitamin-d3"})
    assert result["matched_categories"] == []
    assert "vitamin-d3" not in [s["id"] for s in result["supplements"]]
    assert "profile" in result["personalized_message"]
