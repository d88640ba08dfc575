"""Scripted scenarios run by every session.

A scenario only talks to the session through ``ScriptedInteraction`` so that
state tracking, polling and telemetry stay in one place.
"""

from __future__ import annotations

from dataclasses import dataclass

from .fixtures import FIXTURE_TITLE, FIXTURE_URL
from .interaction import InteractionState, ScriptedInteraction, StepFailure
from .webdriver import By, Keys, RemoteElement


@dataclass(frozen=True)
class SearchScenario:
    """Search a public engine and expect a result mentioning the query target."""

    name: str = "search"
    url: str = "https://duckduckgo.com"
    query: str = "webgrid.dev"
    expected: str = "WebGrid"
    input_selector: By = By.id("search_form_input_homepage")
    result_selector: By = By.class_name("result__a")

    async def run(self, interaction: ScriptedInteraction) -> None:
        await interaction.navigate(self.url, "Visiting DuckDuckGo")

        form = await interaction.locate(self.input_selector)
        await interaction.advance(InteractionState.LOCATED_PRIMARY_ELEMENT, f"Searching for {self.query}")
        await interaction.type_text(form, self.query)
        await interaction.press(form, Keys.ENTER)

        await interaction.telemetry.message("Looking at results")

        async def _mentions_expected(element: RemoteElement) -> bool:
            return self.expected in await element.text()

        try:
            await interaction.locate_polled(self.result_selector, predicate=_mentions_expected)
        except StepFailure:
            await interaction.telemetry.message("No result.")
            raise
        await interaction.advance(InteractionState.ASSERTED_FINAL_STATE, "Found result!")


@dataclass(frozen=True)
class FixturePageScenario:
    """Exercise the inline test page: title, late counter, click and unicode echo."""

    name: str = "fixture"
    url: str = FIXTURE_URL
    title: str = FIXTURE_TITLE
    echo_text: str = "\U0001f6cb\U0001f954"

    async def run(self, interaction: ScriptedInteraction) -> None:
        await interaction.navigate(self.url, "Opening test page")

        title = await interaction.session.title()
        interaction.assert_equal("title", self.title, title)

        counter = await interaction.locate_polled(By.id("counter"))
        await interaction.advance(InteractionState.LOCATED_PRIMARY_ELEMENT, "Counter rendered")
        interaction.assert_equal("counter", "0", await counter.text())
        await interaction.advance(InteractionState.ASSERTED_INITIAL_STATE)

        await interaction.click(await interaction.locate(By.id("increment")), "Incrementing counter")
        echo = await interaction.locate(By.id("echo"))
        await interaction.type_text(echo, self.echo_text, "Typing into echo field")

        interaction.assert_equal("counter", "1", await counter.text())
        interaction.assert_equal("echo value", self.echo_text, await echo.prop("value"))
        await interaction.advance(InteractionState.ASSERTED_FINAL_STATE, "Page behaves")


SCENARIOS = {
    "search": SearchScenario,
    "fixture": FixturePageScenario,
}


def get_scenario(name: str):
    try:
        return SCENARIOS[name]()
    except KeyError:
        raise ValueError(f"unknown scenario {name!r}") from None
