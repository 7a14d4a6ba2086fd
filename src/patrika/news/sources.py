from __future__ import annotations

from patrika.news.models import FeedSource

FEED_SOURCES: tuple[FeedSource, ...] = (
    # India
    FeedSource("https://feeds.feedburner.com/ndtvnews-top-stories", "India", "NDTV"),
    FeedSource("https://indianexpress.com/section/india/feed/", "India", "Indian Express"),
    FeedSource("https://timesofindia.indiatimes.com/rssfeeds/296589292.cms", "India", "Times of India"),
    # World
    FeedSource("http://feeds.feedburner.com/NDTV-LatestNews", "World", "NDTV"),
    FeedSource("https://indianexpress.com/section/world/feed/", "World", "Indian Express"),
    FeedSource("https://feeds.bbci.co.uk/news/world/rss.xml", "World", "BBC"),
    # Tech
    FeedSource("https://www.ndtv.com/gadgets/rss", "Tech", "NDTV"),
    FeedSource("https://indianexpress.com/section/technology/feed/", "Tech", "Indian Express"),
    FeedSource("https://feeds.feedburner.com/TechCrunch/", "Tech", "TechCrunch"),
    # Business
    FeedSource("https://www.ndtv.com/business/rss", "Business", "NDTV"),
    FeedSource("https://indianexpress.com/section/business/feed/", "Business", "Indian Express"),
    FeedSource("https://economictimes.indiatimes.com/rssfeedsdefault.cms", "Business", "Economic Times"),
    # Sports
    FeedSource("https://sports.ndtv.com/rss/all", "Sports", "NDTV"),
    FeedSource("https://indianexpress.com/section/sports/feed/", "Sports", "Indian Express"),
    FeedSource("https://www.espn.in/espn/rss/news", "Sports", "ESPN"),
    # Health
    FeedSource("https://www.ndtv.com/health/rss", "Health", "NDTV"),
    FeedSource("https://indianexpress.com/section/lifestyle/health/feed/", "Health", "Indian Express"),
    FeedSource("https://rssfeeds.webmd.com/rss/rss.aspx?RSSSource=RSS_PUBLIC", "Health", "WebMD"),
    # Entertainment
    FeedSource("https://www.ndtv.com/entertainment/rss", "Entertainment", "NDTV"),
    FeedSource("https://indianexpress.com/section/entertainment/feed/", "Entertainment", "Indian Express"),
    FeedSource("https://timesofindia.indiatimes.com/rssfeeds/1081479906.cms", "Entertainment", "Times of India"),
    # Science
    FeedSource("https://www.sciencedaily.com/rss/all.xml", "Science", "Science Daily"),
    FeedSource("https://feeds.bbci.co.uk/news/science_and_environment/rss.xml", "Science", "BBC"),
)
