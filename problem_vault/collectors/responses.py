"""
Typed views of the JSON each source returns.

Every model ignores unknown fields and defaults missing ones, so a
source adding or dropping optional fields never fails a run. Lists
that a source may send as ``null`` are typed optional and read with
``or []`` by the collectors.
"""

from pydantic import BaseModel, ConfigDict, Field


class _SourceModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# App Store customer reviews RSS (JSON flavour)


class AppStoreLabel(_SourceModel):
    label: str | None = None


class AppStoreAuthor(_SourceModel):
    name: AppStoreLabel | None = None
    uri: AppStoreLabel | None = None


class AppStoreIdAttributes(_SourceModel):
    im_id: str | None = Field(default=None, alias="im:id")


class AppStoreId(_SourceModel):
    label: str | None = None
    attributes: AppStoreIdAttributes | None = None


class AppStoreEntry(_SourceModel):
    author: AppStoreAuthor | None = None
    rating: AppStoreLabel | None = Field(default=None, alias="im:rating")
    version: AppStoreLabel | None = Field(default=None, alias="im:version")
    id: AppStoreId | None = None
    title: AppStoreLabel | None = None
    content: AppStoreLabel | None = None
    updated: AppStoreLabel | None = None


class AppStoreFeed(_SourceModel):
    # A feed with a single review sends an object instead of a list.
    entry: list[AppStoreEntry] | AppStoreEntry | None = None

    @property
    def entries(self) -> list[AppStoreEntry]:
        if self.entry is None:
            return []
        if isinstance(self.entry, AppStoreEntry):
            return [self.entry]
        return self.entry


class AppStoreReviewsResponse(_SourceModel):
    feed: AppStoreFeed | None = None


# GitHub issue search


class GitHubLabel(_SourceModel):
    name: str | None = None


class GitHubReactions(_SourceModel):
    total_count: int = 0
    plus_one: int = Field(default=0, alias="+1")
    minus_one: int = Field(default=0, alias="-1")


class GitHubIssue(_SourceModel):
    id: int
    title: str | None = None
    body: str | None = None
    html_url: str | None = None
    comments: int = 0
    labels: list[GitHubLabel] | None = None
    reactions: GitHubReactions | None = None
    repository_url: str | None = None


class GitHubSearchResponse(_SourceModel):
    total_count: int = 0
    incomplete_results: bool = False
    items: list[GitHubIssue] | None = None


# Hacker News (Algolia search)


class HackerNewsHit(_SourceModel):
    object_id: str = Field(alias="objectID")
    title: str | None = None
    comment_text: str | None = None
    story_text: str | None = None
    story_title: str | None = None
    story_url: str | None = None
    url: str | None = None
    author: str | None = None
    points: int | None = None
    num_comments: int | None = None
    created_at_i: int | None = None


class HackerNewsSearchResponse(_SourceModel):
    hits: list[HackerNewsHit] | None = None
    page: int = 0
    nb_pages: int = Field(default=0, alias="nbPages")
    nb_hits: int = Field(default=0, alias="nbHits")


# Reddit listings


class RedditPost(_SourceModel):
    id: str
    title: str | None = None
    selftext: str | None = None
    score: int = 0
    subreddit: str | None = None
    permalink: str | None = None
    author: str | None = None
    num_comments: int = 0
    created_utc: float | None = None


class RedditChild(_SourceModel):
    kind: str | None = None
    data: RedditPost | None = None


class RedditListingData(_SourceModel):
    after: str | None = None
    children: list[RedditChild] | None = None


class RedditListingResponse(_SourceModel):
    data: RedditListingData | None = None


# Product Hunt GraphQL


class ProductHuntUser(_SourceModel):
    name: str | None = None
    username: str | None = None


class ProductHuntComment(_SourceModel):
    id: str
    body: str | None = None
    user: ProductHuntUser | None = None


class ProductHuntCommentEdge(_SourceModel):
    node: ProductHuntComment | None = None


class ProductHuntCommentConnection(_SourceModel):
    edges: list[ProductHuntCommentEdge] | None = None


class ProductHuntTopic(_SourceModel):
    name: str | None = None


class ProductHuntTopicEdge(_SourceModel):
    node: ProductHuntTopic | None = None


class ProductHuntTopicConnection(_SourceModel):
    edges: list[ProductHuntTopicEdge] | None = None


class ProductHuntPost(_SourceModel):
    id: str
    name: str | None = None
    tagline: str | None = None
    description: str | None = None
    url: str | None = None
    votes_count: int = Field(default=0, alias="votesCount")
    comments: ProductHuntCommentConnection | None = None
    topics: ProductHuntTopicConnection | None = None


class ProductHuntPostEdge(_SourceModel):
    node: ProductHuntPost | None = None


class ProductHuntPostConnection(_SourceModel):
    edges: list[ProductHuntPostEdge] | None = None


class ProductHuntData(_SourceModel):
    posts: ProductHuntPostConnection | None = None


class ProductHuntResponse(_SourceModel):
    data: ProductHuntData | None = None


# LLM brainstorm output


class BrainstormProblem(_SourceModel):
    title: str | None = None
    description: str | None = None
    target_customer: str | None = None
    problem_type: str | None = None
    monetization_model: str | None = None
    estimated_pain_intensity: str | None = None
