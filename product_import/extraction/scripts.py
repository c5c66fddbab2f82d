"""
In-page JavaScript snapshots.

Each script returns plain JSON describing the current DOM/global state.
The Python strategies interpret these snapshots; the scripts themselves make
no decisions beyond collecting candidates.
"""

# Pulls skuBase / sku2info / image lists out of well-known page globals
_GLOBALS_HELPER = """
const findGlobals = () => {
    const roots = [window.rawData, window.__INIT_DATA__, window.__ICE_APP_CONTEXT__, window.__INITIAL_STATE__, window.g_config];
    const out = { skuBase: null, sku2info: null, images: null };
    const seen = new Set();
    const walk = (node, depth) => {
        if (!node || typeof node !== 'object' || depth > 7 || seen.has(node)) return;
        seen.add(node);
        if (!out.skuBase && node.skuBase && node.skuBase.props) out.skuBase = node.skuBase;
        if (!out.sku2info && node.sku2info) out.sku2info = node.sku2info;
        if (!out.sku2info && node.skuCore && node.skuCore.sku2info) out.sku2info = node.skuCore.sku2info;
        if (!out.images) {
            const imgs = node.images || node.auctionImages || node.topGallery || node.detailGallery;
            if (Array.isArray(imgs) && imgs.length && imgs.every(i => typeof i === 'string' || (i && (i.url || i.imgUrl)))) {
                out.images = imgs.map(i => typeof i === 'string' ? i : (i.url || i.imgUrl));
            }
        }
        for (const key of Object.keys(node)) {
            try { walk(node[key], depth + 1); } catch (e) {}
        }
    };
    for (const root of roots) { try { walk(root, 0); } catch (e) {} }
    return out;
};
"""

BASIC_SNAPSHOT_JS = """
async () => {
    const wait = (ms) => new Promise(r => setTimeout(r, ms));
    const text = (el) => (el && (el.innerText || el.textContent) || '').trim();
    """ + _GLOBALS_HELPER + """

    const titleEl = document.querySelector('.tLYIg_Ju span, .KlGVpw3u span, .goods-name, [class*="MainTitle"], [class*="mainTitle"], h1');
    const priceEl = document.querySelector('.goods-price, [class*="price-info"], [class*="goods-price"], [class*="highlightPrice"], [class*="Price--priceText"]');
    const bodyMatch = (document.body.innerText || '').match(/[¥￥]\\s*(\\d+(\\.\\d+)?)/);

    const expand = document.querySelector('.QTo2num4');
    if (expand) { try { expand.click(); await wait(500); } catch (e) {} }

    const detailPairs = [];
    document.querySelectorAll('.iUUH2sOQ, [class*="infoItem"], [class*="attr-item"]').forEach(item => {
        const key = text(item.querySelector('.rMnkPxwx, [class*="infoItemTitle"], [class*="attr-key"]'));
        const val = text(item.querySelector('.KjtdjVU2, [class*="infoItemContent"], [class*="attr-value"]'));
        if (key && val) detailPairs.push([key, val]);
    });

    const gallery = [];
    document.querySelectorAll('.goods-slider img, .swiper-slide img, [class*="mainPic"] img, [class*="MainPic"] img, [class*="thumbnails"] img').forEach(img => {
        const src = img.currentSrc || img.src || img.getAttribute('data-src') || '';
        if (src) gallery.push(src);
    });

    const largeImages = Array.from(document.images).map(img => {
        const r = img.getBoundingClientRect();
        return {
            src: img.currentSrc || img.src || img.getAttribute('data-src') || '',
            w: img.naturalWidth || 0,
            h: img.naturalHeight || 0,
            top: r.top + window.scrollY,
            inLink: !!img.closest('a[href*="goods_id"], a[href*="item.htm"]'),
        };
    }).filter(i => i.src && i.w >= 400);

    return {
        title: text(titleEl),
        documentTitle: document.title || '',
        priceText: text(priceEl),
        bodyPriceText: bodyMatch ? bodyMatch[0] : '',
        detailPairs,
        descriptionText: text(document.querySelector('.goods-details, [class*="detail-desc"]')),
        galleryImages: gallery,
        largeImages,
        viewportHeight: window.innerHeight,
        globals: findGlobals(),
    };
}
"""

# Walks the options overlay: clicks each first-axis value (and each second-axis
# value under it) and reads the displayed price. Handles at most two axes.
OPTIONS_SNAPSHOT_JS = """
async () => {
    const wait = (ms) => new Promise(r => setTimeout(r, ms));
    const text = (el) => (el && (el.innerText || el.textContent) || '').trim();
    """ + _GLOBALS_HELPER + """

    const modal = document.querySelector('.HidQ9ROd, div[role="dialog"], [class*="sku-panel"], [class*="SkuPanel"], [class*="skuWrap"]');
    const overlay = { axes: [], entries: [], images: {} };

    if (modal) {
        const groups = Array.from(modal.querySelectorAll('.bIhLWVqm, [class*="skuItem"], [class*="sku-group"]'));
        const levels = [];
        groups.forEach(group => {
            const name = text(group.querySelector('.sku-specs-key, [class*="ItemLabel"], [class*="sku-title"]'));
            const values = Array.from(group.querySelectorAll('.F7sZG3xe, [class*="valueItem"], [class*="sku-value"]'))
                .map(el => ({ text: text(el.querySelector('span.J109_25J, [class*="valueItemText"]') || el), el }))
                .filter(v => v.text);
            if (name && values.length) {
                overlay.axes.push({ name, values: values.map(v => v.text) });
                levels.push(values);
            }
        });

        const readPrice = () => text(modal.querySelector('.ujEqGzEB, [class*="priceText"], [class*="sku-price"]')).replace(/\\n/g, '');
        const readImage = (v) => {
            const img = modal.querySelector('.O7pEFvHR img, img[class*="sku"], [class*="skuImg"] img') || v.el.querySelector('img');
            return img ? (img.currentSrc || img.src || '') : '';
        };

        const [first, second] = levels;
        if (first) {
            for (const v1 of first) {
                try { v1.el.click(); await wait(300); } catch (e) {}
                const img = readImage(v1);
                if (img) overlay.images[v1.text] = img;
                if (second) {
                    for (const v2 of second) {
                        try { v2.el.click(); await wait(300); } catch (e) {}
                        const price = readPrice();
                        if (price) overlay.entries.push({ values: [v1.text, v2.text], price });
                    }
                } else {
                    const price = readPrice();
                    if (price) overlay.entries.push({ values: [v1.text], price });
                }
            }
        }
    }

    return { overlay, globals: findGlobals() };
}
"""

REVIEWS_SNAPSHOT_JS = """
async (limit) => {
    const wait = (ms) => new Promise(r => setTimeout(r, ms));
    const text = (el) => (el && (el.textContent || '') || '').replace(/\\s+/g, ' ').trim();
    const photosOf = (root) => root ? Array.from(new Set(Array.from(root.querySelectorAll('img'))
        .map(img => img.getAttribute('src') || img.getAttribute('data-src') || '')
        .filter(Boolean)
        .map(src => src.startsWith('//') ? 'https:' + src : src)
        .filter(src => src.startsWith('http')))) : [];

    const structured = [];
    for (const n of Array.from(document.querySelectorAll('[class*="Comment--"]'))) {
        const album = n.querySelector('[class*="album--"]');
        if (album) {
            const opener = album.querySelector('button, a, div, span');
            if (opener && opener.click) { try { opener.click(); await wait(100); } catch (e) {} }
        }
        const name = text(n.querySelector('[class*="userName--"]'));
        const content = text(n.querySelector('[class*="content--"]'));
        if (!name && !content) continue;
        structured.push({ name, meta: text(n.querySelector('[class*="meta--"]')), content, photos: photosOf(album) });
        if (structured.length >= limit) break;
    }

    const generic = [];
    for (const n of Array.from(document.querySelectorAll('[class*="comment-item"], [class*="review-item"], [class*="rate-item"]'))) {
        const content = text(n.querySelector('[class*="content"], [class*="text"], p') || n);
        if (!content) continue;
        generic.push({
            name: text(n.querySelector('[class*="name"], [class*="nick"], [class*="user"]')),
            meta: text(n.querySelector('[class*="meta"], [class*="sku"], [class*="date"]')),
            content,
            photos: photosOf(n),
        });
        if (generic.length >= limit) break;
    }

    return { structured, generic };
}
"""

DESCRIPTION_SNAPSHOT_JS = """
() => {
    const srcOf = (img) => {
        let src = img.getAttribute('data-src') || img.getAttribute('src') || '';
        if (src.startsWith('//')) src = 'https:' + src;
        return src;
    };
    const usable = (img) => !img.closest('a[href*="goods_id"], a[href*="item.htm"], .recommend-goods');

    const container = Array.from(document.querySelectorAll('.descV8-singleImage img, .descV8-container img, [class*="desc-container"] img, #main > div > div.GNrMaxlJ > div:nth-child(19) > div img'))
        .filter(usable).map(srcOf).filter(Boolean);

    const candidates = [];
    document.querySelectorAll('.GNrMaxlJ > div, [class*="detail"] > div, #main div').forEach(div => {
        const imgs = Array.from(div.querySelectorAll('img')).filter(usable).filter(img => img.naturalWidth > 400);
        if (imgs.length >= 3) candidates.push(imgs.map(srcOf).filter(Boolean));
    });

    return { container, candidates: candidates.slice(0, 10) };
}
"""
