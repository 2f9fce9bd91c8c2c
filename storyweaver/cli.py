from __future__ import annotations

import argparse
import os
from getpass import getpass
from pathlib import Path
from typing import Optional

from rich import print
from rich.panel import Panel
from rich.table import Table

from .engine import StoryEngine
from .exceptions import StoryWeaverError
from .gateway import NarrativeGateway
from .models import THEMES, VOICES, Story, reading_level_label
from .profiles import ProfileStore
from .settings import ENV_VAR_MAPPING, TEXT_PROVIDERS, load_user_settings, save_user_settings
from .speech import SpeechGateway, choices_narration


def _engine() -> StoryEngine:
    settings = load_user_settings()
    return StoryEngine(NarrativeGateway(settings=settings), default_voice=settings.default_voice)


def _print_latest(story: Story) -> None:
    chapter = story.last_chapter
    title = f"Chapter {len(story.chapters)}"
    if len(story.chapters) > 1:
        title += f" [dim](you chose: {chapter.choice_made})[/]"
    print(Panel(chapter.chapter_text, title=title, expand=False))
    if story.is_concluded:
        print("[bold magenta]The End[/]")
        return
    for number, choice in enumerate(story.current_choices, start=1):
        print(f"  [bold cyan]{number}[/]. {choice}")
    print(f"[dim]Continue with `storyweaver choose {story.id} <1|2|your own idea>`[/]")


def cmd_profiles(args: argparse.Namespace) -> None:
    profiles = ProfileStore().list()
    if not profiles:
        print("[yellow]No profiles yet.[/] Add one with `storyweaver profile-add`.")
        return
    table = Table(title="Reader profiles")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Age")
    table.add_column("Reading level")
    table.add_column("Themes")
    table.add_column("Voice")
    for p in profiles:
        table.add_row(
            p.id,
            p.name,
            str(p.age),
            reading_level_label(p.reading_level),
            ", ".join(p.preferred_themes) or "-",
            p.voice,
        )
    print(table)


def cmd_profile_add(args: argparse.Namespace) -> None:
    profile = ProfileStore().create(
        args.name,
        args.age,
        args.level,
        preferred_themes=args.theme,
        voice=args.voice,
    )
    print(f"[bold green]Added[/] profile '[cyan]{profile.name}[/]' ([dim]{profile.id}[/])")


def cmd_profile_edit(args: argparse.Namespace) -> None:
    changes = {
        name: value
        for name, value in (
            ("name", args.name),
            ("age", args.age),
            ("reading_level", args.level),
            ("preferred_themes", args.theme),
            ("voice", args.voice),
        )
        if value is not None
    }
    if not changes:
        raise SystemExit("Nothing to change. Pass --name, --age, --level, --theme or --voice.")
    profile = ProfileStore().update(args.profile_id, **changes)
    if profile is None:
        raise SystemExit(f"Profile not found: {args.profile_id}")
    print(f"Updated profile '[cyan]{profile.name}[/]'")


def cmd_profile_remove(args: argparse.Namespace) -> None:
    if ProfileStore().delete(args.profile_id):
        print(f"Removed profile [dim]{args.profile_id}[/]")
    else:
        print(f"[yellow]No profile with id[/] {args.profile_id}")


def cmd_new(args: argparse.Namespace) -> None:
    engine = _engine()
    if args.profile:
        story_id = engine.create_from_profile(args.profile, args.hero, args.setting, theme=args.theme)
    else:
        if args.age is None or args.level is None:
            raise SystemExit("Pass --age and --level, or --profile to use a saved reader.")
        story_id = engine.create(
            args.hero,
            args.setting,
            args.age,
            args.level,
            theme=args.theme,
            voice=args.voice,
        )
    print(f"[bold green]Started[/] a story about [cyan]{args.hero}[/] ([dim]{story_id}[/])")
    _print_latest(engine.get(story_id))


def cmd_stories(args: argparse.Namespace) -> None:
    stories = _engine().list()
    if not stories:
        print("[yellow]No stories yet.[/] Start one with `storyweaver new`.")
        return
    table = Table(title="Stories")
    table.add_column("ID", style="dim")
    table.add_column("Hero", style="cyan")
    table.add_column("Setting")
    table.add_column("Chapters")
    table.add_column("Status")
    for s in stories:
        status = "[magenta]The End[/]" if s.is_concluded else "[green]In progress[/]"
        table.add_row(s.id, s.hero, s.setting, str(len(s.chapters)), status)
    print(table)


def cmd_read(args: argparse.Namespace) -> None:
    story = _engine().get(args.story_id)
    print(f"[bold]{story.hero}[/] in [italic]{story.setting}[/] | "
          f"age {story.age}, {reading_level_label(story.reading_level)}")
    for number, chapter in enumerate(story.chapters[:-1], start=1):
        print(Panel(chapter.chapter_text, title=f"Chapter {number}", expand=False))
    _print_latest(story)


def cmd_choose(args: argparse.Namespace) -> None:
    engine = _engine()
    choice = args.choice
    if choice in ("1", "2"):
        story = engine.get(args.story_id)
        if story.current_choices:
            choice = story.current_choices[int(choice) - 1]
    story = engine.advance(args.story_id, choice)
    _print_latest(story)


def cmd_define(args: argparse.Namespace) -> None:
    result = NarrativeGateway().define_word(args.word, args.context or "", args.age)
    line = f"[bold cyan]{args.word}[/]"
    if result.pronunciation:
        line += f" [dim]({result.pronunciation})[/]"
    print(line)
    print(result.definition)


def cmd_speak(args: argparse.Namespace) -> None:
    story = _engine().get(args.story_id)
    if args.part == "choices":
        if story.is_concluded:
            raise SystemExit("This story has ended, there are no choices to read.")
        text = choices_narration(story.current_choices)
    else:
        text = story.last_chapter.chapter_text
    result = SpeechGateway().synthesize_speech(text, story.voice)
    out = Path(args.out)
    out.write_bytes(result.audio_bytes())
    print(f"Saved narration in {story.voice}'s voice -> [green]{out}[/]")


def _prompt_key(settings_attr: str, label: str, current: Optional[str]) -> Optional[str]:
    env_var = ENV_VAR_MAPPING[settings_attr]
    if os.environ.get(env_var):
        print(f"Found {env_var} in environment. [green]Great![/]")
        return os.environ[env_var]
    if current:
        print(f"A saved {label} key already exists. Press Enter to keep it.")
    key = getpass(f"{label} API Key: ").strip()
    if key:
        os.environ[env_var] = key
        return key
    if not current:
        print(f"[yellow]No {label} key provided.[/] You can set it later with `storyweaver setup` or {env_var}.")
    return current


def cmd_setup(args: argparse.Namespace) -> None:
    s = load_user_settings()
    print("[bold]StoryWeaver Setup[/]")
    if args.provider:
        s.text_provider = args.provider
    if args.voice:
        s.default_voice = args.voice
    if args.data_dir:
        s.data_dir = args.data_dir

    text_attr = f"{s.text_provider}_api_key"
    setattr(s, text_attr, _prompt_key(text_attr, s.text_provider.capitalize(), getattr(s, text_attr)))
    s.elevenlabs_api_key = _prompt_key("elevenlabs_api_key", "ElevenLabs", s.elevenlabs_api_key)

    save_user_settings(s)
    print(f"Text provider: [cyan]{s.text_provider}[/] | Default voice: [cyan]{s.default_voice}[/]")


def main(argv: Optional[list[str]] = None) -> None:
    p = argparse.ArgumentParser(prog="storyweaver", description="StoryWeaver: interactive stories for young readers")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("profiles", help="List reader profiles")
    sp.set_defaults(func=cmd_profiles)

    sp = sub.add_parser("profile-add", help="Create a reader profile")
    sp.add_argument("--name", required=True)
    sp.add_argument("--age", type=int, required=True, help="Reader age (3-12)")
    sp.add_argument("--level", type=int, required=True, help="Reading level 1 (below age) to 5 (above age)")
    sp.add_argument("--theme", action="append", choices=THEMES, help="Preferred theme (repeatable)")
    sp.add_argument("--voice", choices=list(VOICES))
    sp.set_defaults(func=cmd_profile_add)

    sp = sub.add_parser("profile-edit", help="Change fields of a reader profile")
    sp.add_argument("profile_id")
    sp.add_argument("--name")
    sp.add_argument("--age", type=int)
    sp.add_argument("--level", type=int)
    sp.add_argument("--theme", action="append", choices=THEMES, help="Replaces the preferred themes (repeatable)")
    sp.add_argument("--voice", choices=list(VOICES))
    sp.set_defaults(func=cmd_profile_edit)

    sp = sub.add_parser("profile-remove", help="Delete a reader profile (its stories are kept)")
    sp.add_argument("profile_id")
    sp.set_defaults(func=cmd_profile_remove)

    sp = sub.add_parser("new", help="Start a new story")
    sp.add_argument("--hero", required=True, help="Who the story is about")
    sp.add_argument("--setting", required=True, help="Where the story happens")
    sp.add_argument("--profile", help="Profile id to take age, level and voice from")
    sp.add_argument("--age", type=int)
    sp.add_argument("--level", type=int)
    sp.add_argument("--theme", choices=THEMES)
    sp.add_argument("--voice", choices=list(VOICES))
    sp.set_defaults(func=cmd_new)

    sp = sub.add_parser("stories", help="List saved stories")
    sp.set_defaults(func=cmd_stories)

    sp = sub.add_parser("read", help="Show every chapter of a story")
    sp.add_argument("story_id")
    sp.set_defaults(func=cmd_read)

    sp = sub.add_parser("choose", help="Pick a choice (1, 2 or your own idea) and continue the story")
    sp.add_argument("story_id")
    sp.add_argument("choice")
    sp.set_defaults(func=cmd_choose)

    sp = sub.add_parser("define", help="Kid-friendly definition of a word")
    sp.add_argument("word")
    sp.add_argument("--context", help="Sentence the word appeared in")
    sp.add_argument("--age", type=int)
    sp.set_defaults(func=cmd_define)

    sp = sub.add_parser("speak", help="Save narration of a story's latest chapter or choices as MP3")
    sp.add_argument("story_id")
    sp.add_argument("--part", choices=["chapter", "choices"], default="chapter")
    sp.add_argument("--out", default="narration.mp3")
    sp.set_defaults(func=cmd_speak)

    sp = sub.add_parser("setup", help="Configure API keys and defaults")
    sp.add_argument("--provider", choices=TEXT_PROVIDERS)
    sp.add_argument("--voice", choices=list(VOICES))
    sp.add_argument("--data-dir", help="Where stories and profiles are saved")
    sp.set_defaults(func=cmd_setup)

    sp = sub.add_parser("web", help="Launch the web API")
    sp.add_argument("--port", type=int, default=8000, help="Port to run the server on (default: 8000)")
    def _web(args: argparse.Namespace) -> None:
        url = f"http://localhost:{args.port}"
        print(f"[bold green]Starting web server at {url}[/] (docs at {url}/docs)")
        print("[dim]Press Ctrl+C to stop[/]")
        print()
        print("[yellow]SECURITY:[/] This server binds to localhost only (127.0.0.1)")
        print("[yellow]Do NOT expose this to the internet without adding authentication[/]")
        print()

        import uvicorn
        uvicorn.run(
            "storyweaver.webapp:app",
            host="127.0.0.1",
            port=args.port,
            log_level="info"
        )
    sp.set_defaults(func=_web)

    args = p.parse_args(argv)
    try:
        args.func(args)
    except StoryWeaverError as e:
        print(f"[red]{e.user_message}[/]")
        if e.help_text:
            print(f"[dim]{e.help_text}[/]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
