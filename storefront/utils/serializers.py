def serialize_doc(doc):
    """Convert MongoDB document to dict with string _id"""
    if doc:
        doc["_id"] = str(doc["_id"])
        for key in ("restaurant_id", "courier_id"):
            if doc.get(key) is not None:
                doc[key] = str(doc[key])
    return doc
