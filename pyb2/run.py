import logging
from enum import Enum
from pathlib import Path
from typing import NoReturn, Optional

import typer

from pyb2.auth import save_credentials
from pyb2.client import B2Client
from pyb2.errors import B2Error
from pyb2.models import BucketType, Credentials

app = typer.Typer()


class BucketTypeChoice(str, Enum):
    public = "public"
    private = "private"


BUCKET_TYPES = {
    BucketTypeChoice.public: BucketType.PUBLIC,
    BucketTypeChoice.private: BucketType.PRIVATE,
}


def _client(ctx: typer.Context) -> B2Client:
    try:
        return B2Client.from_config(ctx.obj["config"])
    except B2Error as e:
        _fail(e)


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(ctx: typer.Context, config: Optional[Path] = None, verbose: bool = False):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@app.command()
def login(ctx: typer.Context, account_id: str, application_key: str):
    """Check credentials against the API and save them."""
    with B2Client(account_id, application_key) as b2:
        try:
            b2.authorize()
        except B2Error as e:
            _fail(e)
    credentials = Credentials(account_id=account_id, application_key=application_key)
    try:
        path = save_credentials(credentials, ctx.obj["config"])
    except B2Error as e:
        _fail(e)
    print(f"Saved credentials to {path}")


@app.command()
def buckets(ctx: typer.Context):
    with _client(ctx) as b2:
        try:
            for bucket in b2.list_buckets():
                print(f"{bucket.id}  {bucket.type:<10}  {bucket.name}")
        except B2Error as e:
            _fail(e)


@app.command("create-bucket")
def create_bucket(
    ctx: typer.Context,
    name: str,
    bucket_type: BucketTypeChoice = typer.Option(
        BucketTypeChoice.private, "--type"
    ),
):
    with _client(ctx) as b2:
        try:
            bucket = b2.create_bucket(name, BUCKET_TYPES[bucket_type])
        except B2Error as e:
            _fail(e)
    print(bucket.id)


@app.command("update-bucket")
def update_bucket(
    ctx: typer.Context,
    bucket_id: str,
    bucket_type: BucketTypeChoice = typer.Option(..., "--type"),
    by_name: bool = typer.Option(False, "--by-name", help="BUCKET_ID is a name"),
):
    with _client(ctx) as b2:
        try:
            if by_name:
                bucket = b2.update_bucket(
                    bucket_name=bucket_id, bucket_type=BUCKET_TYPES[bucket_type]
                )
            else:
                bucket = b2.update_bucket(bucket_id, BUCKET_TYPES[bucket_type])
        except B2Error as e:
            _fail(e)
    print(f"{bucket.name} is now {bucket.type}")


@app.command("delete-bucket")
def delete_bucket(ctx: typer.Context, bucket_id: str):
    with _client(ctx) as b2:
        try:
            b2.delete_bucket(bucket_id)
        except B2Error as e:
            _fail(e)
    print(f"Deleted {bucket_id}")


@app.command()
def upload(
    ctx: typer.Context,
    bucket_id: str,
    path: Path,
    name: Optional[str] = None,
    content_type: Optional[str] = None,
):
    if not path.is_file():
        _fail(FileNotFoundError(f"No file found at '{path}'"))

    with _client(ctx) as b2, path.open("rb") as stream:
        try:
            uploaded = b2.upload(
                bucket_id, name or path.name, stream, content_type=content_type
            )
        except B2Error as e:
            _fail(e)
    print(f"{uploaded.id}  {uploaded.content_sha1}  {uploaded.name}")


@app.command()
def ls(ctx: typer.Context, bucket_id: str, start: Optional[str] = None):
    with _client(ctx) as b2:
        try:
            listing = b2.list_file_names(bucket_id, start_file_name=start)
        except B2Error as e:
            _fail(e)
    for file in listing.files:
        print(f"{file.id}  {file.size:>12}  {file.name}")
    if listing.next_file_name:
        print(f"More files from: {listing.next_file_name}")


@app.command()
def download(ctx: typer.Context, file_id: str, destination: Path):
    with _client(ctx) as b2:
        try:
            data = b2.download_file_by_id(file_id)
        except B2Error as e:
            _fail(e)
    destination.write_bytes(data)
    print(f"Wrote {len(data)} bytes to {destination}")


if __name__ == "__main__":
    app()
