# ytyanbot

Building blocks for a group chat bot. Each module can be used on its own,
without running a bot.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `ytyanbot.mathparser`

An arithmetic evaluator that works with exact rationals (`fractions.Fraction`).
It accepts full-width symbols, `+ - * /`, `**` and `^` for powers, `//` for
floor division, `%` for modulo, `!` for factorial, `nPr` or `nAr` for
permutations, `nCr` for combinations, and the constants `pi` and `e`.

```python
from ytyanbot.mathparser import evaluate, fast_check

evaluate("0.1 + 0.2")   # Fraction(3, 10)
evaluate("10C3")        # Fraction(120, 1)
fast_check("1+1")       # True
```

All failures raise `CalcError`. Its `typ` attribute holds a `CalcErrorType`
and its `pos` attribute holds the input position, or -1 when the position is
unknown. Results that would grow too large raise
`CalcErrorType.RESULT_TOO_BIG`. The lower-level steps are exposed as
`tokenize`, `shunting_yard` and `eval_rpn`.

### `ytyanbot.bili`

Bilibili link handling:

- `bv2av` and `av2bv` convert between `/BV1...` and `/av<number>` path segments.
- `has_video_link` reports whether a text contains either form.
- `convert_bilibili_links(text)` rewrites every link in the text and returns a
  `Converted` with `av_text`, `bv_text`, `has_av`, `has_bv`, `need_clean` and
  `can_convert()`. Short links on `b23.tv` and `bili2233.cn` are resolved over
  HTTP with `follow_redirects`. Query parameters other than `p`,
  `start_progress` and `t` are removed, or other than `itemsId` on mall links.
  A text with no Bilibili link raises `NoBilibiliLinksError`.

### `ytyanbot.exchange`

- `parse_exchange_rate("1.43 usd to cny")` returns an `ExchangeRequest`. When
  no target currency is given, it is `CNY`.
- `is_exchange_rate_calc` checks whether a text has that shape.
- `get_exchange_rate` converts the amount using rates from a public API. The
  rates are cached, and the API is asked at most once an hour.
- `get_exchange_rate_with_alias` first maps currency names through a dict.

Unsupported currencies raise `CurrencyNotAvailableError`. All errors derive
from `ExchangeError`.

### `ytyanbot.dice`

`DiceCommand` describes a roll. Its `type` is a `DiceType`: `NORMAL`, `BONUS`
or `PENALTY`. `roll()` returns the result as HTML text. When an ability is
set, `format_ability` shows the full, half and fifth thresholds. You can pass
an `rng` (a `random.Random`) to get repeatable rolls.

### `ytyanbot.battle`

`BattleRound` tracks initiative order, the current turn and the round number.
You can change it through methods or through text commands given to
`parse_command`:

- `add <name> <order> <status>`
- `chg <old> <new>`
- `del <name|order>`
- `stat <name|order> <status>`

`new_from_text` builds a round from one name per line. `str(round)` renders the
round as HTML. Invalid commands raise `BattleError`.

### `ytyanbot.webauth`

- `bot_verify_key(token)` derives the verification key.
- `check_telegram_auth(data, key)` checks the hash of URL-encoded web-app init
  data. It returns an `AuthInfo` that includes a `WebInitUser`, or raises
  `AuthError`.
- `ErrCode.msg(message)` builds a JSON error body.
- `parse_json_int64` and `format_json_int64` read and write 64-bit integers
  stored as quoted strings.

### `ytyanbot.azure`

- `Moderator.eval_file(path)` uploads an image and returns a
  `ModeratorResult`.
- `Ocr.ocr_file(path)` uploads an image and returns an `OcrResult`. Its
  `text()` method joins the recognised lines.
- Non-200 responses raise `AzureError`.

### `ytyanbot.config`

`load_config(path)` reads a YAML file into a `Config`.

`get_config()` loads the file named by the `GOYTYAN_CONFIG` environment
variable once. Without that variable it returns an empty `Config`.
`get_ocr()` and `get_moderator()` return clients built from that
configuration, or `None` when no file is configured.

`get_logger(name)` returns a logger that writes JSON lines. It writes to
stderr by default. When `GOYTYAN_LOG_FILE` is set, it writes to a rotating
gzip-compressed file, and also to stdout unless `GOYTYAN_NO_STDOUT` is set.

### `ytyanbot.ytdlp`

`DownloadRequest(url=...).run_with_timeout(seconds)` runs `yt-dlp` into a
temporary directory and returns a `DownloadResult`. When `write_info_json` is
set, the result also offers `title()`, `uploader()`, `description()` and
`thumbnail()`. Call `clean()` to remove the temporary directory.
`extract_first_frame` uses `ffmpeg`. Failed runs raise `RunError`. Both
`yt-dlp` and `ffmpeg` must be installed and on `PATH`.

## What this package does not do

This package contains only the helpers listed above. It does not include:

- a bot that connects to a chat service and dispatches commands,
- an HTTP server for the web app,
- message storage or search indexing,
- image generation.

To get a running bot, combine these modules with a chat client library of
your choice.