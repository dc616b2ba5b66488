from xml.sax.saxutils import escape
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizvault.core.config import settings
from quizvault.core.database import get_db
from quizvault.models.orm import Category, Item

router = APIRouter()

SITEMAP_MAX_URLS = 50000

@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
  return "User-agent: *\nAllow: /"

@router.get("/sitemap.xml")
def sitemap(db: Session = Depends(get_db)):
  base = settings.SITE_BASE_URL.rstrip("/")
  urls = [f"{base}/"]
  for name in db.execute(select(Category.name).where(Category.is_private.is_(False)).order_by(Category.name)).scalars():
    urls.append(f"{base}/categories/{quote(name)}")
  items = select(Item.id).where(Item.is_private.is_(False)).order_by(Item.created_at.desc()).limit(SITEMAP_MAX_URLS - len(urls))
  for item_id in db.execute(items).scalars():
    urls.append(f"{base}/items/{item_id}")
  body = ['<?xml version="1.0" encoding="UTF-8"?>', '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">']
  body += [f"  <url><loc>{escape(u)}</loc></url>" for u in urls]
  body.append("</urlset>")
  return Response(content="\n".join(body), media_type="application/xml")
