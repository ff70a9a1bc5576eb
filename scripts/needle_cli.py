#!/usr/bin/env python3
"""Interactive CLI for running needle tests against the needlebench service."""

import sys
from pathlib import Path

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table


class NeedleCLI:
    """Terminal client for the needle test endpoints."""

    def __init__(self, base_url: str = "http://localhost:5000"):
        """Initialize needle CLI."""
        self.base_url = base_url
        self.session_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=300.0)
        self.last_results: list[dict] = []

    def start(self) -> None:
        """Start the interactive session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🪡 Needlebench - Needle in a Haystack Tests[/bold blue]\n"
                "Commands: /models, /key, /test, /rescore, /help, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to needlebench[/green]\n")

        try:
            while True:
                command = Prompt.ask("\n[bold cyan]needlebench[/bold cyan]").strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                elif command == "/models":
                    self._show_models()
                elif command == "/key":
                    self._set_key()
                elif command == "/test":
                    self._run_test()
                elif command == "/rescore":
                    self._rescore()
                elif command:
                    self.console.print("[yellow]Unknown command, try /help[/yellow]")

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _show_models(self) -> None:
        response = self.client.get(f"{self.base_url}/models")
        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return

        table = Table(title="Registered models")
        table.add_column("Id", style="cyan")
        table.add_column("Name")
        table.add_column("Provider", style="magenta")
        for model in response.json()["models"]:
            table.add_row(model["id"], model["name"], model["provider"])
        self.console.print(table)

    def _set_key(self) -> None:
        provider = Prompt.ask("Provider", choices=["openai", "google", "anthropic"])
        api_key = Prompt.ask("API key", password=True)

        payload = {"provider": provider, "apiKey": api_key}
        if self.session_id:
            payload["sessionId"] = self.session_id

        response = self.client.post(f"{self.base_url}/credentials", json=payload)
        if response.status_code == 200:
            data = response.json()
            self.session_id = data["sessionId"]
            self.console.print(
                f"[green]✅ Key stored. Available providers: {', '.join(data['availableProviders'])}[/green]"
            )
        else:
            self.console.print(f"[red]❌ {response.json().get('detail', response.text)}[/red]")

    def _run_test(self) -> None:
        path = Path(Prompt.ask("Haystack file"))
        if not path.is_file():
            self.console.print(f"[red]❌ No such file: {path}[/red]")
            return

        haystack = path.read_text(encoding="utf-8")
        needle = Prompt.ask("Needle (question)")
        exact_match = Prompt.ask("Exact match")
        model_ids = [m.strip() for m in Prompt.ask("Models (comma separated)").split(",") if m.strip()]

        payload = {
            "haystack": haystack,
            "needle": needle,
            "exactMatch": exact_match,
            "models": [{"modelId": model_id} for model_id in model_ids],
        }
        if self.session_id:
            payload["sessionId"] = self.session_id

        self.console.print(f"[dim]💭 Asking {len(model_ids)} models...[/dim]")
        try:
            response = self.client.post(f"{self.base_url}/needle-tests", json=payload)
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return

        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return

        data = response.json()
        self.session_id = data["sessionId"]
        self.last_results = data["results"]
        self._display_results(data["results"], data["errors"])

    def _rescore(self) -> None:
        if not self.last_results:
            self.console.print("[yellow]Run a test first[/yellow]")
            return

        exact_match = Prompt.ask("New exact match")
        response = self.client.post(
            f"{self.base_url}/needle-tests/rescore",
            json={"exactMatch": exact_match, "results": self.last_results},
        )
        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return

        self.last_results = response.json()
        self._display_results(self.last_results, [])

    def _display_results(self, results: list[dict], errors: list[dict]) -> None:
        table = Table(title="Needle test results")
        table.add_column("Model", style="cyan")
        table.add_column("Found")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Words", justify="right")
        table.add_column("Response")

        for result in results:
            found = "[green]✅[/green]" if result["foundNeedle"] else "[red]❌[/red]"
            snippet = result["response"].strip().replace("\n", " ")
            table.add_row(
                result["modelId"],
                found,
                str(result["responseTimeMs"]),
                str(result["wordCount"]),
                snippet[:80] + ("…" if len(snippet) > 80 else ""),
            )
        for error in errors:
            table.add_row(error["modelId"], "[yellow]⚠️[/yellow]", "-", "-", f"[red]{error['error']}[/red]")

        self.console.print(table)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /models - List the models the service knows about
• /key - Store an API key for this session
• /test - Run a needle test from a haystack file
• /rescore - Score the last answers against a different exact match
• /quit or /exit - Exit

[bold]Tips:[/bold]
• Keys set in the server environment are used for every session
• The exact match only counts when it appears as a whole word in the answer
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the needle CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:5000"

    cli = NeedleCLI(base_url)
    cli.start()


if __name__ == "__main__":
    main()
