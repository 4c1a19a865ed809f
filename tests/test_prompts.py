from conftest import make_bookmark
from ingestion.base import Article
from processing.prompts import build_categorization_prompt, format_bookmark


def test_format_bookmark_includes_author_engagement_and_context():
    bookmark = make_bookmark("1", "Great thread on evals", username="bob", name="Bob", likes=1200, retweets=30)

    block = format_bookmark(0, bookmark, {"1": '[github.com] "evals" - harness'})

    assert block.startswith("[0] Author: @bob (Bob)\nText: Great thread on evals")
    assert 'Link context:\n[github.com] "evals" - harness' in block
    assert "Engagement: 1200 likes, 30 RTs" in block
    assert block.endswith("---")


def test_long_post_is_truncated_with_marker():
    block = format_bookmark(0, make_bookmark("1", "a" * 2000), {})

    assert "a" * 1800 + "... [truncated, 2000 chars total]" in block
    assert "a" * 1801 not in block


def test_article_body_is_labelled():
    bookmark = make_bookmark("1", "b" * 1900, article=Article(title="Scaling agents"))

    block = format_bookmark(0, bookmark, {})

    assert 'X Article: "Scaling agents"\nContent:\n' in block
    assert "[...article continues, 1900 chars total]" in block


def test_quoted_post_is_included():
    quoted = make_bookmark("9", "q" * 700, username="carol", likes=50)

    block = format_bookmark(0, make_bookmark("1", "Agree!", quoted=quoted), {})

    assert f'Quoted tweet by @carol: "{"q" * 600}..." [50 likes]' in block


def test_prompt_asks_for_exact_cardinality():
    prompt = build_categorization_prompt([make_bookmark("1"), make_bookmark("2"), make_bookmark("3")], {})

    assert "[0] Author:" in prompt and "[2] Author:" in prompt
    assert "The array must have exactly 3 objects" in prompt
    assert '{"bookmarks": [{...bookmark 0...}, {...bookmark 1...}, {...bookmark 2...}]}' in prompt
