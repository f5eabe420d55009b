# chatbridge

chatbridge routes messages between chat accounts. Accounts and gateways are
described in a TOML file. Each gateway lists channels on those accounts as
`in`, `out` or `inout`. A router forwards every incoming message to the
matching destination channels. On the way it applies ignore rules, nick and
text rewriting, and threading IDs. It can also store attachments on a media
server or in a local directory.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running

```
chatbridge -conf chatbridge.toml
chatbridge -debug
chatbridge -version
```

- Without `-conf`, the command reads `chatbridge.toml` from the current
  directory.
- Debug logging can also be switched on by setting `DEBUG=1` in the
  environment.
- Logs are written to standard output.
- The command exits with status 1 in these cases:
  - the configuration cannot be read;
  - a gateway is misconfigured;
  - a bridge fails to start, unless `IgnoreFailureOnStart` is set in
    `[general]`.

## Configuration

```toml
[irc.libera]
server = "irc.example.com:6697"
RemoteNickFormat = "[{PROTOCOL}] <{NICK}> "
IgnoreNicks = "spambot otherbot"

[slack.work]
token = "token"
ReplaceMessages = [["foo", "bar"]]

[general]
MediaDownloadPath = "/srv/media"
MediaServerDownload = "https://media.example.com"

[[gateway]]
name = "main"
enable = true

    [[gateway.inout]]
    account = "irc.libera"
    channel = "#project"

    [[gateway.inout]]
    account = "slack.work"
    channel = "project"

[[samechannelgateway]]
enable = true
name = "mirror"
accounts = ["slack.work", "irc.libera"]
channels = ["general"]
```

Keys are case-insensitive. An account's settings are looked up first in its
own table and then in `[general]`.

- `IgnoreNicks` and `IgnoreMessages` are space-separated regular expressions.
  A message whose nick, text or file comment matches one of them is dropped.
- `ReplaceNicks` and `ReplaceMessages` are lists of `[search, replace]` pairs.
- `ExtractNicks` is a list of `[search, extract]` pairs. When the sender
  matches `search`, the nick captured by `extract` is taken from the text.
- `RemoteNickFormat` supports these placeholders: `{NICK}`, `{NOPINGNICK}`,
  `{BRIDGE}`, `{PROTOCOL}`, `{GATEWAY}`, `{LABEL}`, `{USERID}` and
  `{CHANNEL}`.
- Other supported settings are `StripNick`, `IconURL`, `ShowJoinPart`,
  `ShowTopicChange`, `SyncTopic` and `PreserveThreading`.
- In `[general]` the media settings are read:
  - `MediaServerUpload`: files are PUT to `<url>/<sha>/<name>`.
  - `MediaDownloadPath`: files are written to `<path>/<sha>/<name>`.
  - `MediaServerDownload`: the base of the URL recorded on the message.

## Library use

- `chatbridge.config.Config.from_file(path)` or `Config.from_string(text)`
  loads a configuration. It raises `ConfigError` on bad input.
- `chatbridge.bridgemap.register(protocol, factory, user_typing)` makes a
  protocol available. The factory is called as `factory(bridge, queue)` and
  returns a `chatbridge.bridge.Bridger`, which implements `connect`,
  `disconnect`, `join_channel` and `send`.
- `chatbridge.router.Router(config, bridge_map)` builds the gateways.
- `Router.start()` connects every bridge and starts a background thread. That
  thread reads messages from `Router.message`; putting `None` there stops it.
- `Router.process(msg)` routes one `chatbridge.config.Message` directly.
- `chatbridge.rules` holds the filtering helpers.
- `chatbridge.media` holds the attachment storage helpers.

The package also contains two webhook clients and some XMPP helpers:

- `chatbridge.matterhook.Client(url, WebhookConfig(...))` posts `OMessage`
  objects to an incoming-webhook URL. Unless `disable_server` is set, it also
  serves outgoing-webhook POSTs on `bind_address`. The `receive(timeout)`
  method returns them as `IMessage` objects.
- `chatbridge.rockethook.Client(url, HookConfig(...))` serves Rocket.Chat
  style JSON webhook POSTs. They are returned by `receive(timeout)`.
- `chatbridge.xmpputil` parses room and nick from MUC addresses, strips `/me`
  actions and builds cached avatar URLs.

## What it does not do

- **No chat protocols.** The package ships no protocol implementations, so
  the protocol registry starts empty. A gateway that names an account whose
  protocol has not been registered with `bridgemap.register` is rejected at
  startup. Running the `chatbridge` command on its own therefore only works
  for configurations whose protocols your code registered first.
- **No scripting.** There is no message scripting: `{TENGO}` in
  `RemoteNickFormat` is replaced by an empty string.
- **No emoji conversion.** `:emoji:` codes are not converted.