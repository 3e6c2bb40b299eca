"""
In-memory accumulation of one run's events.

Three running totals: site-wide, per page path, per referrer URL. Note the
two different visitor signals: the site total counts *new visitors*, page
and referrer totals count *unique pageviews*.
"""

from dataclasses import dataclass, field

from aggregator.services.decoder import Event


@dataclass
class Totals:
    pageviews: int = 0
    visitors: int = 0


@dataclass
class RunTotals:
    site: Totals = field(default_factory=Totals)
    pages: dict[str, Totals] = field(default_factory=dict)
    referrers: dict[str, Totals] = field(default_factory=dict)
    blocked: int = 0
    skipped: int = 0

    def add(self, event: Event) -> None:
        self.site.pageviews += 1
        self.site.visitors += 1 if event.is_new_visitor else 0

        page = self.pages.setdefault(event.path, Totals())
        page.pageviews += 1
        page.visitors += 1 if event.is_unique_pageview else 0

        if event.referrer_url != "":
            referrer = self.referrers.setdefault(event.referrer_url, Totals())
            referrer.pageviews += 1
            referrer.visitors += 1 if event.is_unique_pageview else 0

    def reset(self) -> None:
        """Back to an empty run; guards against committing the same data twice."""
        self.site = Totals()
        self.pages = {}
        self.referrers = {}
        self.blocked = 0
        self.skipped = 0

    @property
    def is_empty(self) -> bool:
        return self.site.pageviews == 0
